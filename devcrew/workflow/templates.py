"""Stock workflow shapes and a builder for caller-defined graphs."""
from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from devcrew.core.errors import ConfigurationError
from devcrew.core.models import (
    AgentRole,
    Task,
    TaskCollaboration,
    Workflow,
    WorkflowStage,
)
from devcrew.orchestration.collaboration import coerce_protocol
from devcrew.workflow.graph import WorkflowGraph

# (stage id, stage name, role, task title)
StagePlan = Tuple[str, str, AgentRole, str]

FULL_DEVELOPMENT: Sequence[StagePlan] = (
    ("requirements", "Requirements analysis", AgentRole.ANALYST, "Analyse and document the requirements"),
    ("design", "Architecture design", AgentRole.ARCHITECT, "Design the system architecture"),
    ("implementation", "Implementation", AgentRole.DEVELOPER, "Implement the designed components"),
    ("testing", "Testing", AgentRole.TESTER, "Write and run the test suite"),
    ("deployment", "Deployment", AgentRole.OPS, "Prepare and run the deployment"),
    ("documentation", "Documentation", AgentRole.WRITER, "Write user and developer documentation"),
)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def linear_workflow(
    name: str,
    plans: Sequence[StagePlan],
    *,
    description: str = "",
    brief: str = "",
    workflow_id: Optional[str] = None,
) -> Workflow:
    """Chain one single-task stage per plan entry."""
    if not plans:
        raise ConfigurationError("A workflow needs at least one stage")
    stages: List[WorkflowStage] = []
    for stage_id, stage_name, role, title in plans:
        task = Task(id=f"{stage_id}-task", title=title, description=brief or title)
        stages.append(WorkflowStage(id=stage_id, name=stage_name, role=role, tasks=[task]))

    workflow = Workflow(
        id=workflow_id or _new_id("workflow"),
        name=name,
        description=description,
        stages=stages,
        current_stage_id=stages[0].id,
    )
    graph = WorkflowGraph(workflow)
    for source, target in zip(stages, stages[1:]):
        graph.link(source.id, target.id)
    graph.validate()
    return workflow


def full_development(brief: str = "", *, name: str = "Full development", workflow_id: Optional[str] = None) -> Workflow:
    return linear_workflow(
        name,
        FULL_DEVELOPMENT,
        description="Requirements through documentation",
        brief=brief,
        workflow_id=workflow_id,
    )


def _single(index: int) -> Callable[..., Workflow]:
    plan = FULL_DEVELOPMENT[index]

    def build(brief: str = "", *, name: str = plan[1], workflow_id: Optional[str] = None) -> Workflow:
        return linear_workflow(name, [plan], brief=brief, workflow_id=workflow_id)

    build.__name__ = plan[0]
    return build


TEMPLATES: Dict[str, Callable[..., Workflow]] = {
    "full_development": full_development,
    "requirements_analysis": _single(0),
    "architecture_design": _single(1),
    "code_generation": _single(2),
    "testing": _single(3),
}


def from_template(template: str, brief: str = "", **kwargs: Any) -> Workflow:
    try:
        factory = TEMPLATES[template]
    except KeyError:
        raise ConfigurationError(f"Unknown workflow template: {template}") from None
    return factory(brief, **kwargs)


def _collaboration_from_config(task_id: str, data: Any) -> TaskCollaboration:
    if not isinstance(data, dict) or "protocol" not in data:
        raise ConfigurationError(f"Task '{task_id}' collaboration needs a protocol")
    participants = data.get("participants") or []
    if not isinstance(participants, list):
        raise ConfigurationError(f"Task '{task_id}' collaboration participants must be a list")
    return TaskCollaboration(protocol=coerce_protocol(data["protocol"]), participants=[str(p) for p in participants])


def _task_from_config(stage_id: str, index: int, data: Dict[str, Any]) -> Task:
    task_id = data.get("id") or f"{stage_id}-task-{index + 1}"
    collaboration = data.get("collaboration")
    return Task(
        id=task_id,
        title=data.get("title") or data.get("description") or f"Task {index + 1}",
        description=data.get("description", ""),
        assigned_to=data.get("assigned_to"),
        collaboration=_collaboration_from_config(task_id, collaboration) if collaboration else None,
    )


def workflow_from_config(data: Dict[str, Any]) -> Workflow:
    """Build a workflow from a plain dictionary.

    ``template`` delegates to a stock shape. Otherwise ``stages`` lists
    ``{id, name, role?, tasks, next?}`` entries; when no stage names ``next``
    the stages are chained in declaration order.
    """
    if data.get("template"):
        return from_template(
            data["template"],
            data.get("description", ""),
            name=data.get("name") or data["template"],
            workflow_id=data.get("id"),
        )

    name = data.get("name")
    if not name:
        raise ConfigurationError("A workflow name is required")
    raw_stages = data.get("stages") or []
    if not raw_stages:
        raise ConfigurationError(f"Workflow '{name}' has no stages")

    stages: List[WorkflowStage] = []
    for position, raw in enumerate(raw_stages):
        stage_id = raw.get("id") or f"stage-{position + 1}"
        role = raw.get("role")
        try:
            stage_role = AgentRole(role) if role else None
        except ValueError:
            raise ConfigurationError(f"Stage '{stage_id}' has unknown role '{role}'") from None
        stages.append(
            WorkflowStage(
                id=stage_id,
                name=raw.get("name") or stage_id,
                role=stage_role,
                tasks=[_task_from_config(stage_id, i, task) for i, task in enumerate(raw.get("tasks", []))],
            )
        )

    workflow = Workflow(
        id=data.get("id") or _new_id("workflow"),
        name=name,
        description=data.get("description", ""),
        stages=stages,
        current_stage_id=data.get("current_stage_id") or stages[0].id,
    )
    graph = WorkflowGraph(workflow)
    if any(raw.get("next") for raw in raw_stages):
        for stage, raw in zip(stages, raw_stages):
            for target in raw.get("next") or []:
                if graph.find_stage(target) is None:
                    raise ConfigurationError(f"Stage '{stage.id}' references unknown stage '{target}'")
                graph.link(stage.id, target)
    else:
        for source, target in zip(stages, stages[1:]):
            graph.link(source.id, target.id)
    graph.validate()
    return workflow
