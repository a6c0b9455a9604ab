"""CLI demonstration of the three collaboration protocols and a workflow run."""
from __future__ import annotations

import asyncio
from typing import NoReturn

from devcrew.agents.echo import EchoAgent
from devcrew.core.actions import ActionDispatcher
from devcrew.core.models import AgentConfig, AgentRole, Task, TaskCollaboration, CollaborationType
from devcrew.log import setup_logging
from devcrew.orchestration.collaboration import CollaborationOrchestrator
from devcrew.orchestration.commands import CommandHandler
from devcrew.orchestration.guard import AgentGuard
from devcrew.orchestration.registry import AgentRegistry
from devcrew.runtime import get_tool_registry
from devcrew.services.storage import MemoryStorage
from devcrew.workflow.engine import AgentTaskRunner, WorkflowEngine
from devcrew.workflow.templates import full_development

ROSTER = (
    ("analyst", AgentRole.ANALYST),
    ("architect", AgentRole.ARCHITECT),
    ("developer", AgentRole.DEVELOPER),
    ("tester", AgentRole.TESTER),
    ("ops", AgentRole.OPS),
    ("writer", AgentRole.WRITER),
)


async def main() -> None:
    setup_logging("WARNING")
    storage = MemoryStorage()
    guard = AgentGuard()
    registry = AgentRegistry(
        agent_catalog={"echo": EchoAgent},
        dispatcher=ActionDispatcher(get_tool_registry()),
        storage=storage,
    )
    orchestrator = CollaborationOrchestrator(guard=guard)
    engine = WorkflowEngine(AgentTaskRunner(registry, orchestrator, guard), storage=storage)
    commands = CommandHandler(registry=registry, orchestrator=orchestrator, engine=engine)

    for agent_id, role in ROSTER:
        await registry.create_agent(AgentConfig(name=agent_id.title(), role=role, kind="echo", agent_id=agent_id))
    print(f"Registered agents: {', '.join(agent_id for agent_id, _ in ROSTER)}")

    for protocol in ("sequential", "parallel"):
        created = await commands.create_session(protocol, ["analyst", "architect", "developer"])
        result = await commands.execute_session(created.session_id, "Outline a URL shortener")
        print(f"\n--- {protocol} ---\n{result.output}")
        await commands.end_session(created.session_id)

    workflow = full_development("Build a URL shortener")
    workflow.stages[2].tasks.append(
        Task(
            id="implementation-review",
            title="Pair review",
            description="Review the implementation together",
            collaboration=TaskCollaboration(CollaborationType.SEQUENTIAL, ["developer", "tester"]),
        )
    )
    await engine.create_workflow(workflow)
    result = await commands.execute_workflow(workflow.id)
    print(f"\nWorkflow {workflow.id}: {result.output}")
    for stage in workflow.stages:
        for task in stage.tasks:
            print(f"  [{stage.id}] {task.title}: {task.result}")


def run() -> NoReturn:
    asyncio.run(main())


if __name__ == "__main__":
    run()
