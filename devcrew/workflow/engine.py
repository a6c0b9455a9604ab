"""Stage execution and the workflow lifecycle."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Set, Union

from devcrew.agents.base import Agent
from devcrew.core.errors import ConfigurationError, NotFoundError, WorkflowBusyError
from devcrew.core.models import (
    AgentInput,
    StageError,
    StageResult,
    StageStatus,
    Task,
    TaskStatus,
    Workflow,
    WorkflowSnapshot,
    WorkflowStage,
    WorkflowStatus,
    utcnow,
)
from devcrew.orchestration.collaboration import CollaborationOrchestrator
from devcrew.orchestration.guard import AgentGuard
from devcrew.orchestration.registry import AgentRegistry
from devcrew.services.storage import Storage, StorageNamespace
from devcrew.workflow.graph import WorkflowGraph, stage_status
from devcrew.workflow.templates import workflow_from_config

logger = logging.getLogger(__name__)


class TaskRunner(Protocol):
    async def run(self, workflow: Workflow, stage: WorkflowStage, task: Task) -> str:
        """Carry out ``task`` and return the response text; raise on failure."""
        ...


class AgentTaskRunner:
    """Send a task to its assigned agent, the stage's role agent or a collaboration."""

    def __init__(
        self,
        registry: AgentRegistry,
        orchestrator: CollaborationOrchestrator,
        guard: Optional[AgentGuard] = None,
    ) -> None:
        self._registry = registry
        self._orchestrator = orchestrator
        self._guard = guard or AgentGuard()

    async def run(self, workflow: Workflow, stage: WorkflowStage, task: Task) -> str:
        seed = AgentInput(
            prompt=task.description or task.title,
            context=f"Workflow: {workflow.name}\nStage: {stage.name}\nTask: {task.title}",
            metadata={"workflow_id": workflow.id, "stage_id": stage.id, "task_id": task.id},
        )
        if task.collaboration is not None:
            participants = self._registry.resolve_many(task.collaboration.participants)
            output = await self._orchestrator.run(
                f"{workflow.id}:{task.id}",
                task.collaboration.protocol,
                participants,
                seed,
            )
        else:
            agent = self._resolve(stage, task)
            output = await self._guard.process(agent, seed)
        return output.response

    def _resolve(self, stage: WorkflowStage, task: Task) -> Agent:
        if task.assigned_to:
            return self._registry.require(task.assigned_to)
        if stage.role is not None:
            agent = self._registry.find_by_role(stage.role)
            if agent is not None:
                return agent
            raise ConfigurationError(f"No {stage.role.value} agent available for task '{task.id}'")
        raise ConfigurationError(f"Task '{task.id}' has no assignee and stage '{stage.id}' has no role")


class WorkflowEngine:
    """Runs stages task by task and keeps the set of known workflows.

    ``execute_stage`` isolates task failures into the returned
    ``StageResult``; it never raises for them.
    """

    def __init__(self, runner: TaskRunner, storage: Optional[Storage] = None) -> None:
        self._runner = runner
        self._storage = storage
        self._workflows: Dict[str, Workflow] = {}
        self._running: Set[str] = set()
        self._pause_requests: Set[str] = set()
        self._stop_requests: Set[str] = set()

    async def execute_stage(self, workflow: Workflow, stage: WorkflowStage) -> StageResult:
        stage.started = True
        errors: List[StageError] = []
        done = 0

        for task in stage.tasks:
            if task.status is TaskStatus.DONE:
                done += 1
                continue
            task.touch(TaskStatus.IN_PROGRESS)
            task.error = None
            try:
                task.result = await self._runner.run(workflow, stage, task)
            except Exception as exc:  # noqa: BLE001
                task.error = str(exc)
                task.touch(TaskStatus.BLOCKED)
                errors.append(StageError(task_id=task.id, message=str(exc)))
                logger.warning("Task %s in stage %s failed: %s", task.id, stage.id, exc)
                continue
            task.touch(TaskStatus.DONE)
            done += 1

        stage.completed = done == len(stage.tasks)
        workflow.updated_at = utcnow()

        if stage.completed:
            status = StageStatus.COMPLETED
        elif errors:
            status = StageStatus.BLOCKED
        else:
            status = StageStatus.IN_PROGRESS
        logger.info("Stage %s of workflow %s: %s (%d/%d)", stage.id, workflow.id, status.value, done, len(stage.tasks))
        return StageResult(
            stage_id=stage.id,
            status=status,
            completed_tasks=done,
            total_tasks=len(stage.tasks),
            errors=errors,
        )

    def monitor_workflow(self, workflow: Workflow) -> WorkflowSnapshot:
        total = len(workflow.stages)
        completed = sum(1 for stage in workflow.stages if stage.completed)
        return WorkflowSnapshot(
            workflow_id=workflow.id,
            status=workflow.status,
            current_stage_id=workflow.current_stage_id,
            progress=(completed / total * 100) if total else 0.0,
            stage_statuses={stage.id: stage_status(stage) for stage in workflow.stages},
        )

    async def create_workflow(self, config: Union[Workflow, Dict[str, Any]]) -> Workflow:
        workflow = config if isinstance(config, Workflow) else workflow_from_config(config)
        WorkflowGraph(workflow).validate()
        if workflow.id in self._workflows:
            raise ConfigurationError(f"Workflow '{workflow.id}' already exists")
        self._workflows[workflow.id] = workflow
        await self._persist(workflow)
        logger.info("Created workflow %s (%s) with %d stages", workflow.id, workflow.name, len(workflow.stages))
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow '{workflow_id}' not found")
        return workflow

    def list_workflows(self) -> List[Workflow]:
        return list(self._workflows.values())

    async def delete_workflow(self, workflow_id: str) -> bool:
        if workflow_id in self._running:
            raise WorkflowBusyError(workflow_id)
        removed = self._workflows.pop(workflow_id, None) is not None
        if self._storage is not None:
            removed = await self._storage.delete(StorageNamespace.WORKFLOWS.value, workflow_id) or removed
        return removed

    async def run_workflow(self, workflow_id: str) -> WorkflowSnapshot:
        """Execute stages from the current one until done, blocked, paused or stopped."""
        workflow = self.get_workflow(workflow_id)
        if workflow_id in self._running:
            raise WorkflowBusyError(workflow_id)
        if workflow.status is WorkflowStatus.COMPLETED:
            return self.monitor_workflow(workflow)

        self._running.add(workflow_id)
        self._pause_requests.discard(workflow_id)
        self._stop_requests.discard(workflow_id)
        graph = WorkflowGraph(workflow)
        self._transition(workflow, WorkflowStatus.RUNNING)
        try:
            while True:
                result = await self.execute_stage(workflow, graph.current_stage)
                await self._persist(workflow)
                if workflow_id in self._stop_requests:
                    break
                if result.status is not StageStatus.COMPLETED:
                    self._transition(workflow, WorkflowStatus.FAILED)
                    break
                if not graph.move_to_next_stage():
                    self._transition(workflow, WorkflowStatus.COMPLETED)
                    break
                if workflow_id in self._pause_requests:
                    self._transition(workflow, WorkflowStatus.PAUSED)
                    break
        except BaseException:
            if workflow.status is WorkflowStatus.RUNNING:
                self._transition(workflow, WorkflowStatus.FAILED)
            raise
        finally:
            self._running.discard(workflow_id)
            self._pause_requests.discard(workflow_id)
            self._stop_requests.discard(workflow_id)
            await self._persist(workflow)
        return self.monitor_workflow(workflow)

    async def pause_workflow(self, workflow_id: str) -> Workflow:
        """Pause takes effect at the next stage boundary of a running workflow."""
        workflow = self.get_workflow(workflow_id)
        if workflow_id in self._running:
            self._pause_requests.add(workflow_id)
        elif workflow.status in (WorkflowStatus.NOT_STARTED, WorkflowStatus.FAILED):
            self._transition(workflow, WorkflowStatus.PAUSED)
            await self._persist(workflow)
        return workflow

    async def stop_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.get_workflow(workflow_id)
        if workflow_id in self._running:
            self._stop_requests.add(workflow_id)
        if workflow.stages:
            WorkflowGraph(workflow).move_to_stage(workflow.stages[0].id)
        self._transition(workflow, WorkflowStatus.STOPPED)
        await self._persist(workflow)
        return workflow

    async def load_workflow(self, workflow_id: str) -> Workflow:
        if self._storage is None:
            raise NotFoundError(f"Workflow '{workflow_id}' not found")
        data = await self._storage.get(StorageNamespace.WORKFLOWS.value, workflow_id)
        if data is None:
            raise NotFoundError(f"Workflow '{workflow_id}' not found")
        workflow = Workflow.from_dict(data)
        if workflow.status is WorkflowStatus.RUNNING:
            # Interrupted mid-run by a restart.
            workflow.status = WorkflowStatus.PAUSED
        self._workflows[workflow.id] = workflow
        return workflow

    async def load_persisted(self) -> List[Workflow]:
        if self._storage is None:
            return []
        loaded = []
        for workflow_id in await self._storage.keys(StorageNamespace.WORKFLOWS.value):
            if workflow_id not in self._workflows:
                loaded.append(await self.load_workflow(workflow_id))
        return loaded

    def _transition(self, workflow: Workflow, status: WorkflowStatus) -> None:
        if workflow.status is not status:
            logger.info("Workflow %s: %s -> %s", workflow.id, workflow.status.value, status.value)
        workflow.status = status
        workflow.updated_at = utcnow()

    async def _persist(self, workflow: Workflow) -> None:
        if self._storage is not None:
            await self._storage.set(StorageNamespace.WORKFLOWS.value, workflow.id, workflow.to_dict())
