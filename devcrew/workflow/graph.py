"""Navigation over a workflow's stage graph."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from devcrew.core.errors import ConfigurationError, NotFoundError
from devcrew.core.models import StageStatus, TaskStatus, Workflow, WorkflowStage, utcnow

logger = logging.getLogger(__name__)


def stage_status(stage: WorkflowStage) -> StageStatus:
    if not stage.started:
        return StageStatus.NOT_STARTED
    if stage.completed:
        return StageStatus.COMPLETED
    if any(task.status is TaskStatus.BLOCKED for task in stage.tasks):
        return StageStatus.BLOCKED
    return StageStatus.IN_PROGRESS


class WorkflowGraph:
    """Wraps a ``Workflow`` and moves its cursor along stage edges.

    Only the first entry of ``next_stages``/``previous_stages`` is followed;
    branching graphs are traversed with ``move_to_stage``.
    """

    def __init__(self, workflow: Workflow) -> None:
        self.workflow = workflow

    @property
    def stages(self) -> Dict[str, WorkflowStage]:
        return {stage.id: stage for stage in self.workflow.stages}

    @property
    def current_stage(self) -> WorkflowStage:
        return self.get_stage(self.workflow.current_stage_id)

    def get_stage(self, stage_id: str) -> WorkflowStage:
        stage = self.find_stage(stage_id)
        if stage is None:
            raise NotFoundError(f"Stage '{stage_id}' not found in workflow '{self.workflow.id}'")
        return stage

    def find_stage(self, stage_id: str) -> Optional[WorkflowStage]:
        for stage in self.workflow.stages:
            if stage.id == stage_id:
                return stage
        return None

    def move_to_next_stage(self) -> bool:
        return self._follow(self.current_stage.next_stages)

    def move_to_previous_stage(self) -> bool:
        return self._follow(self.current_stage.previous_stages)

    def move_to_stage(self, stage_id: str) -> bool:
        if self.find_stage(stage_id) is None:
            return False
        self._set_current(stage_id)
        return True

    def get_stage_status(self, stage_id: str) -> StageStatus:
        return stage_status(self.get_stage(stage_id))

    def _follow(self, neighbours: List[str]) -> bool:
        if not neighbours or self.find_stage(neighbours[0]) is None:
            return False
        self._set_current(neighbours[0])
        return True

    def _set_current(self, stage_id: str) -> None:
        if stage_id != self.workflow.current_stage_id:
            logger.debug("Workflow %s: %s -> %s", self.workflow.id, self.workflow.current_stage_id, stage_id)
        self.workflow.current_stage_id = stage_id
        self.workflow.updated_at = utcnow()

    def link(self, source_id: str, target_id: str) -> None:
        """Add ``source -> target`` and the matching back edge."""
        source = self.get_stage(source_id)
        target = self.get_stage(target_id)
        if target_id not in source.next_stages:
            source.next_stages.append(target_id)
        if source_id not in target.previous_stages:
            target.previous_stages.append(source_id)

    def validate(self) -> None:
        stages = self.stages
        if len(stages) != len(self.workflow.stages):
            raise ConfigurationError(f"Workflow '{self.workflow.id}' has duplicate stage ids")
        if self.workflow.current_stage_id not in stages:
            raise ConfigurationError(
                f"Current stage '{self.workflow.current_stage_id}' is not part of workflow '{self.workflow.id}'"
            )
        for stage in self.workflow.stages:
            for edge in [*stage.next_stages, *stage.previous_stages]:
                if edge not in stages:
                    raise ConfigurationError(f"Stage '{stage.id}' references unknown stage '{edge}'")

        # Three-colour DFS over next edges.
        visiting, done = set(), set()

        def visit(stage_id: str, path: List[str]) -> None:
            if stage_id in done:
                return
            if stage_id in visiting:
                cycle = " -> ".join([*path, stage_id])
                raise ConfigurationError(f"Workflow '{self.workflow.id}' contains a cycle: {cycle}")
            visiting.add(stage_id)
            for successor in stages[stage_id].next_stages:
                visit(successor, [*path, stage_id])
            visiting.discard(stage_id)
            done.add(stage_id)

        for stage_id in stages:
            visit(stage_id, [])
