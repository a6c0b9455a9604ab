"""Stage graph navigation, stage execution and the workflow lifecycle."""
from __future__ import annotations

import asyncio
from typing import Dict, List

import pytest

from devcrew.agents.echo import EchoAgent
from devcrew.core.errors import ConfigurationError, NotFoundError, WorkflowBusyError
from devcrew.core.models import (
    AgentConfig,
    AgentRole,
    CollaborationType,
    StageStatus,
    Task,
    TaskCollaboration,
    TaskStatus,
    Workflow,
    WorkflowStage,
    WorkflowStatus,
)
from devcrew.orchestration.collaboration import CollaborationOrchestrator
from devcrew.orchestration.registry import AgentRegistry
from devcrew.services.storage import MemoryStorage
from devcrew.workflow.engine import AgentTaskRunner, WorkflowEngine
from devcrew.workflow.graph import WorkflowGraph
from devcrew.workflow.templates import full_development, workflow_from_config


class FakeRunner:
    """Task runner failing the task ids it was told to fail."""

    def __init__(self, failing=(), delay: float = 0.0) -> None:
        self.failing = set(failing)
        self.delay = delay
        self.calls: List[str] = []

    async def run(self, workflow, stage, task) -> str:
        self.calls.append(task.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if task.id in self.failing:
            raise RuntimeError(f"{task.id} exploded")
        return f"{task.id} ok"


def two_stage_workflow() -> Workflow:
    return workflow_from_config(
        {
            "id": "wf",
            "name": "Requirements and design",
            "stages": [
                {"id": "requirements", "role": "analyst", "tasks": [{"id": "t1", "title": "Collect requirements"}]},
                {"id": "design", "role": "architect", "tasks": [{"id": "t2", "title": "Sketch design"}]},
            ],
        }
    )


@pytest.mark.anyio
async def test_requirements_then_design_scenario() -> None:
    engine = WorkflowEngine(FakeRunner())
    workflow = two_stage_workflow()
    graph = WorkflowGraph(workflow)

    result = await engine.execute_stage(workflow, graph.current_stage)
    assert result.status is StageStatus.COMPLETED
    assert (result.completed_tasks, result.total_tasks) == (1, 1)
    assert graph.move_to_next_stage() is True
    assert workflow.current_stage_id == "design"

    snapshot = engine.monitor_workflow(workflow)
    assert snapshot.progress == 50.0
    assert snapshot.stage_statuses == {"requirements": StageStatus.COMPLETED, "design": StageStatus.NOT_STARTED}


@pytest.mark.anyio
async def test_failed_task_blocks_stage_without_raising() -> None:
    runner = FakeRunner(failing={"t-bad"})
    engine = WorkflowEngine(runner)
    stage = WorkflowStage(
        id="build",
        name="Build",
        tasks=[Task(id="t-ok", title="ok"), Task(id="t-bad", title="bad"), Task(id="t-after", title="after")],
    )
    workflow = Workflow(id="wf", name="wf", stages=[stage], current_stage_id="build")

    result = await engine.execute_stage(workflow, stage)

    assert result.status is StageStatus.BLOCKED
    assert runner.calls == ["t-ok", "t-bad", "t-after"]
    assert [error.task_id for error in result.errors] == ["t-bad"]
    assert stage.tasks[1].status is TaskStatus.BLOCKED
    assert stage.tasks[1].error == "t-bad exploded"
    assert WorkflowGraph(workflow).get_stage_status("build") is StageStatus.BLOCKED

    # Re-running only retries the blocked task.
    runner.failing.clear()
    result = await engine.execute_stage(workflow, stage)
    assert result.status is StageStatus.COMPLETED
    assert runner.calls[3:] == ["t-bad"]


@pytest.mark.anyio
async def test_empty_stage_completes() -> None:
    engine = WorkflowEngine(FakeRunner())
    stage = WorkflowStage(id="empty", name="Empty")
    workflow = Workflow(id="wf", name="wf", stages=[stage], current_stage_id="empty")

    result = await engine.execute_stage(workflow, stage)

    assert result.status is StageStatus.COMPLETED
    assert stage.completed is True


def test_stage_status_rules() -> None:
    stage = WorkflowStage(id="s", name="s", tasks=[Task(id="t", title="t")])
    workflow = Workflow(id="wf", name="wf", stages=[stage], current_stage_id="s")
    graph = WorkflowGraph(workflow)

    assert graph.get_stage_status("s") is StageStatus.NOT_STARTED
    stage.started = True
    assert graph.get_stage_status("s") is StageStatus.IN_PROGRESS
    stage.tasks[0].status = TaskStatus.BLOCKED
    assert graph.get_stage_status("s") is StageStatus.BLOCKED
    stage.completed = True
    assert graph.get_stage_status("s") is StageStatus.COMPLETED


def test_moves_follow_first_neighbour_and_jump_anywhere() -> None:
    workflow = workflow_from_config(
        {
            "name": "branching",
            "stages": [
                {"id": "a", "next": ["b", "c"]},
                {"id": "b", "next": ["d"]},
                {"id": "c"},
                {"id": "d"},
            ],
        }
    )
    graph = WorkflowGraph(workflow)

    assert graph.move_to_previous_stage() is False
    assert workflow.current_stage_id == "a"
    assert graph.move_to_next_stage() is True
    assert workflow.current_stage_id == "b"
    assert graph.move_to_previous_stage() is True
    assert workflow.current_stage_id == "a"
    assert graph.move_to_stage("d") is True
    assert graph.move_to_next_stage() is False
    assert graph.move_to_stage("missing") is False
    assert workflow.current_stage_id == "d"


def test_validate_rejects_bad_graphs() -> None:
    with pytest.raises(ConfigurationError):
        workflow_from_config({"name": "cyclic", "stages": [{"id": "a", "next": ["b"]}, {"id": "b", "next": ["a"]}]})
    with pytest.raises(ConfigurationError):
        workflow_from_config({"name": "dangling", "stages": [{"id": "a", "next": ["nowhere"]}]})
    with pytest.raises(ConfigurationError):
        workflow_from_config({"name": "bad-role", "stages": [{"id": "a", "role": "wizard"}]})

    workflow = two_stage_workflow()
    workflow.current_stage_id = "ghost"
    with pytest.raises(ConfigurationError):
        WorkflowGraph(workflow).validate()


def test_full_development_template() -> None:
    workflow = full_development("Build a shop")

    assert [stage.id for stage in workflow.stages] == [
        "requirements",
        "design",
        "implementation",
        "testing",
        "deployment",
        "documentation",
    ]
    assert [stage.role for stage in workflow.stages][-1] is AgentRole.WRITER
    assert workflow.stages[0].next_stages == ["design"]
    assert workflow.stages[1].previous_stages == ["requirements"]
    assert workflow.stages[0].tasks[0].description == "Build a shop"


@pytest.mark.anyio
async def test_run_workflow_to_completion_with_monotonic_progress() -> None:
    engine = WorkflowEngine(FakeRunner())
    workflow = await engine.create_workflow(full_development())
    seen: List[float] = []

    original = engine.execute_stage

    async def tracking(wf, stage):
        result = await original(wf, stage)
        seen.append(engine.monitor_workflow(wf).progress)
        return result

    engine.execute_stage = tracking
    snapshot = await engine.run_workflow(workflow.id)

    assert snapshot.status is WorkflowStatus.COMPLETED
    assert snapshot.progress == 100.0
    assert seen == sorted(seen)
    assert workflow.current_stage_id == "documentation"


@pytest.mark.anyio
async def test_run_workflow_stops_on_blocked_stage() -> None:
    engine = WorkflowEngine(FakeRunner(failing={"design-task"}))
    workflow = await engine.create_workflow(full_development())

    snapshot = await engine.run_workflow(workflow.id)

    assert snapshot.status is WorkflowStatus.FAILED
    assert snapshot.current_stage_id == "design"
    assert snapshot.stage_statuses["design"] is StageStatus.BLOCKED


@pytest.mark.anyio
async def test_pause_resume_and_busy() -> None:
    engine = WorkflowEngine(FakeRunner(delay=0.02))
    workflow = await engine.create_workflow(full_development())

    running = asyncio.create_task(engine.run_workflow(workflow.id))
    await asyncio.sleep(0.005)
    with pytest.raises(WorkflowBusyError):
        await engine.run_workflow(workflow.id)
    await engine.pause_workflow(workflow.id)
    snapshot = await running

    assert snapshot.status is WorkflowStatus.PAUSED
    assert snapshot.current_stage_id == "design"

    resumed = await engine.run_workflow(workflow.id)
    assert resumed.status is WorkflowStatus.COMPLETED


@pytest.mark.anyio
async def test_stop_resets_cursor() -> None:
    engine = WorkflowEngine(FakeRunner(failing={"testing-task"}))
    workflow = await engine.create_workflow(full_development())
    await engine.run_workflow(workflow.id)

    stopped = await engine.stop_workflow(workflow.id)

    assert stopped.status is WorkflowStatus.STOPPED
    assert stopped.current_stage_id == "requirements"


@pytest.mark.anyio
async def test_persistence_round_trip() -> None:
    storage = MemoryStorage()
    engine = WorkflowEngine(FakeRunner(failing={"t2"}), storage=storage)
    workflow = await engine.create_workflow(two_stage_workflow())
    await engine.run_workflow(workflow.id)

    restored = await WorkflowEngine(FakeRunner(), storage=storage).load_workflow("wf")

    assert restored.status is WorkflowStatus.FAILED
    assert restored.current_stage_id == "design"
    assert restored.stages[0].tasks[0].result == "t1 ok"
    assert restored.stages[1].tasks[0].error == "t2 exploded"

    with pytest.raises(NotFoundError):
        await engine.load_workflow("unknown")
    assert await engine.delete_workflow("wf") is True
    with pytest.raises(NotFoundError):
        engine.get_workflow("wf")


@pytest.mark.anyio
async def test_agent_task_runner_uses_roles_assignees_and_collaborations() -> None:
    registry = AgentRegistry(agent_catalog={"echo": EchoAgent})
    for agent_id, role in (("ana", AgentRole.ANALYST), ("arch", AgentRole.ARCHITECT), ("dev", AgentRole.DEVELOPER)):
        await registry.create_agent(
            AgentConfig(name=agent_id.title(), role=role, kind="echo", agent_id=agent_id, metadata={"latency": 0})
        )
    orchestrator = CollaborationOrchestrator()
    engine = WorkflowEngine(AgentTaskRunner(registry, orchestrator))
    workflow = workflow_from_config(
        {
            "id": "wf-agents",
            "name": "agents",
            "stages": [
                {
                    "id": "requirements",
                    "role": "analyst",
                    "tasks": [
                        {"id": "by-role", "title": "Gather", "description": "gather needs"},
                        {"id": "by-id", "title": "Draft", "description": "draft design", "assigned_to": "arch"},
                        {
                            "id": "pair",
                            "title": "Pair",
                            "description": "pair up",
                            "collaboration": {"protocol": "sequential", "participants": ["arch", "dev"]},
                        },
                    ],
                },
            ],
        }
    )

    result = await engine.execute_stage(workflow, workflow.stages[0])

    tasks: Dict[str, Task] = {task.id: task for task in workflow.stages[0].tasks}
    assert result.status is StageStatus.COMPLETED
    assert tasks["by-role"].result == "Ana heard gather needs"
    assert tasks["by-id"].result == "Arch heard draft design"
    assert tasks["pair"].result == "Dev heard Arch heard pair up"
    assert tasks["pair"].collaboration == TaskCollaboration(CollaborationType.SEQUENTIAL, ["arch", "dev"])
    assert len(orchestrator.sessions) == 0


@pytest.mark.anyio
async def test_agent_task_runner_without_matching_agent_blocks() -> None:
    registry = AgentRegistry(agent_catalog={"echo": EchoAgent})
    engine = WorkflowEngine(AgentTaskRunner(registry, CollaborationOrchestrator()))
    workflow = two_stage_workflow()

    result = await engine.execute_stage(workflow, workflow.stages[0])

    assert result.status is StageStatus.BLOCKED
    assert "analyst" in result.errors[0].message


