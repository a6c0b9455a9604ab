"""Command surface shared by the HTTP routers and the demo script."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from devcrew.core import metadata as meta
from devcrew.core.errors import ConfigurationError, DevcrewError, NotFoundError, SessionBusyError
from devcrew.core.models import AgentConfig, AgentInput, CollaborationType, utcnow
from devcrew.orchestration.collaboration import CollaborationOrchestrator, coerce_protocol
from devcrew.orchestration.registry import AgentRegistry
from devcrew.workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    success: bool
    session_id: Optional[str] = None
    workflow_id: Optional[str] = None
    agent_id: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = Field(default=None, description="Exception class behind a failure")
    details: Dict[str, Any] = Field(default_factory=dict)


@dataclass(slots=True)
class SessionTicket:
    """A named collaboration between ``create_session`` and ``end_session``."""

    session_id: str
    protocol: CollaborationType
    agent_ids: List[str]
    created_at: Any = field(default_factory=utcnow)
    rounds: int = 0


class CommandHandler:
    """Turns caller commands into registry, orchestrator and engine calls.

    Every command returns a ``CommandResult``; ``DevcrewError`` failures are
    reported with ``success=False`` instead of raised.
    """

    def __init__(
        self,
        *,
        registry: AgentRegistry,
        orchestrator: CollaborationOrchestrator,
        engine: WorkflowEngine,
    ) -> None:
        self.registry = registry
        self.orchestrator = orchestrator
        self.engine = engine
        self._tickets: Dict[str, SessionTicket] = {}

    async def create_workflow(self, definition: Dict[str, Any]) -> CommandResult:
        async def command() -> CommandResult:
            workflow = await self.engine.create_workflow(definition)
            return CommandResult(success=True, workflow_id=workflow.id, details=workflow.to_dict())

        return await self._attempt("create_workflow", command)

    async def execute_workflow(self, workflow_id: str) -> CommandResult:
        async def command() -> CommandResult:
            snapshot = await self.engine.run_workflow(workflow_id)
            workflow = self.engine.get_workflow(workflow_id)
            failures = {
                task.id: task.error
                for stage in workflow.stages
                for task in stage.tasks
                if task.error
            }
            return CommandResult(
                success=not failures,
                workflow_id=workflow_id,
                output=f"{snapshot.status.value} ({snapshot.progress:.0f}%)",
                error="; ".join(f"{task_id}: {message}" for task_id, message in failures.items()) or None,
                details={
                    "status": snapshot.status.value,
                    "current_stage_id": snapshot.current_stage_id,
                    "progress": snapshot.progress,
                    "stage_statuses": {k: v.value for k, v in snapshot.stage_statuses.items()},
                },
            )

        return await self._attempt("execute_workflow", command)

    async def pause_workflow(self, workflow_id: str) -> CommandResult:
        async def command() -> CommandResult:
            workflow = await self.engine.pause_workflow(workflow_id)
            return CommandResult(success=True, workflow_id=workflow_id, output=workflow.status.value)

        return await self._attempt("pause_workflow", command)

    async def stop_workflow(self, workflow_id: str) -> CommandResult:
        async def command() -> CommandResult:
            workflow = await self.engine.stop_workflow(workflow_id)
            return CommandResult(success=True, workflow_id=workflow_id, output=workflow.status.value)

        return await self._attempt("stop_workflow", command)

    async def create_agent(self, config: Union[AgentConfig, Dict[str, Any]]) -> CommandResult:
        async def command() -> CommandResult:
            if isinstance(config, AgentConfig):
                agent_config = config
            else:
                try:
                    agent_config = AgentConfig.from_dict(config)
                except (KeyError, TypeError, ValueError) as exc:
                    raise ConfigurationError(f"Invalid agent configuration: {exc}") from exc
            agent = await self.registry.create_agent(agent_config)
            return CommandResult(success=True, agent_id=agent.agent_id)

        return await self._attempt("create_agent", command)

    async def remove_agent(self, agent_id: str) -> CommandResult:
        async def command() -> CommandResult:
            if not await self.registry.remove_agent(agent_id):
                raise NotFoundError(f"Agent '{agent_id}' not found")
            return CommandResult(success=True, agent_id=agent_id)

        return await self._attempt("remove_agent", command)

    async def create_session(
        self,
        protocol: Union[CollaborationType, str],
        agent_ids: List[str],
        *,
        session_id: Optional[str] = None,
        coordinator_id: Optional[str] = None,
    ) -> CommandResult:
        """Register a named collaboration; the coordinator, when given, leads."""

        async def command() -> CommandResult:
            kind = coerce_protocol(protocol)
            ids = list(dict.fromkeys(agent_ids))
            if coordinator_id:
                ids = [coordinator_id, *(agent_id for agent_id in ids if agent_id != coordinator_id)]
            self.registry.resolve_many(ids)

            ticket_id = session_id or f"session-{uuid.uuid4().hex[:8]}"
            if ticket_id in self._tickets:
                raise ConfigurationError(f"Collaboration session '{ticket_id}' already exists")
            self._tickets[ticket_id] = SessionTicket(session_id=ticket_id, protocol=kind, agent_ids=ids)
            logger.info("Created %s collaboration %s with %s", kind.value, ticket_id, ids)
            return CommandResult(
                success=True,
                session_id=ticket_id,
                details={"protocol": kind.value, "participants": ids},
            )

        return await self._attempt("create_session", command)

    async def execute_session(
        self,
        session_id: str,
        prompt: str,
        *,
        context: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CommandResult:
        async def command() -> CommandResult:
            ticket = self._ticket(session_id)
            participants = self.registry.resolve_many(ticket.agent_ids)
            output = await self.orchestrator.run(
                session_id,
                ticket.protocol,
                participants,
                AgentInput(prompt=prompt, context=context, metadata=dict(metadata or {})),
            )
            ticket.rounds += 1
            details: Dict[str, Any] = {
                "actions": [{"type": action.type, "payload": action.payload} for action in output.actions],
                "executed_actions": [
                    {"type": item.action.type, "result": item.result, "error": item.error}
                    for item in output.executed_actions
                ],
            }
            if output.metadata.get(meta.FAILURES):
                details["failures"] = output.metadata[meta.FAILURES]
            return CommandResult(success=True, session_id=session_id, output=output.response, details=details)

        return await self._attempt("execute_session", command)

    async def end_session(self, session_id: str) -> CommandResult:
        async def command() -> CommandResult:
            ticket = self._ticket(session_id)
            if session_id in self.orchestrator.sessions:
                raise SessionBusyError(session_id)
            del self._tickets[session_id]
            return CommandResult(success=True, session_id=session_id, details={"rounds": ticket.rounds})

        return await self._attempt("end_session", command)

    def list_sessions(self) -> List[SessionTicket]:
        return list(self._tickets.values())

    def get_session(self, session_id: str) -> SessionTicket:
        return self._ticket(session_id)

    def _ticket(self, session_id: str) -> SessionTicket:
        ticket = self._tickets.get(session_id)
        if ticket is None:
            raise NotFoundError(f"Collaboration session '{session_id}' not found")
        return ticket

    async def _attempt(self, name: str, command: Callable[[], Awaitable[CommandResult]]) -> CommandResult:
        try:
            return await command()
        except DevcrewError as exc:
            logger.warning("Command %s failed: %s", name, exc)
            return CommandResult(success=False, error=str(exc), error_type=type(exc).__name__)
