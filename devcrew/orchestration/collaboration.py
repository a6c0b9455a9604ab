"""Collaboration protocols run over a fixed set of agents."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from devcrew.agents.base import Agent
from devcrew.agents.prompts import role_title
from devcrew.core import metadata as meta
from devcrew.core.errors import (
    ConfigurationError,
    DevcrewError,
    ParticipantError,
    RoundTimeoutError,
    UnknownWorkerError,
)
from devcrew.core.message_bus import CollaborationEvent, CollaborationEventBus
from devcrew.core.models import (
    Action,
    AgentInput,
    AgentOutput,
    CollaborationSession,
    CollaborationType,
    ExecutedAction,
)
from devcrew.orchestration.guard import AgentGuard
from devcrew.orchestration.parser import assignments_from_output
from devcrew.orchestration.sessions import SessionStore

logger = logging.getLogger(__name__)

Outcome = Union[AgentOutput, ParticipantError]


class FailurePolicy(str, Enum):
    """What a parallel fan-out does when one participant fails.

    ABORT cancels the siblings and fails the round. PARTIAL lets every call
    finish and reports failures next to the successful results.
    """

    ABORT = "abort"
    PARTIAL = "partial"


def coerce_protocol(value: Union[str, CollaborationType, None]) -> CollaborationType:
    if isinstance(value, CollaborationType):
        return value
    try:
        return CollaborationType(str(value).lower())
    except ValueError:
        raise ConfigurationError(f"Unknown collaboration protocol: {value!r}") from None


def label(agent: Agent) -> str:
    return f"{agent.name} ({agent.role.value})"


class CollaborationOrchestrator:
    """Drive sequential, parallel and hierarchical rounds to one aggregate output."""

    def __init__(
        self,
        *,
        sessions: Optional[SessionStore] = None,
        guard: Optional[AgentGuard] = None,
        bus: Optional[CollaborationEventBus] = None,
        failure_policy: Union[FailurePolicy, str] = FailurePolicy.ABORT,
        round_timeout: Optional[float] = None,
    ) -> None:
        self.sessions = sessions or SessionStore()
        self._guard = guard or AgentGuard()
        self._bus = bus or CollaborationEventBus()
        self.failure_policy = FailurePolicy(failure_policy)
        self.round_timeout = round_timeout
        self._protocols: Dict[
            CollaborationType, Callable[[CollaborationSession, AgentInput], Awaitable[AgentOutput]]
        ] = {
            CollaborationType.SEQUENTIAL: self._sequential,
            CollaborationType.PARALLEL: self._parallel,
            CollaborationType.HIERARCHICAL: self._hierarchical,
        }

    @property
    def bus(self) -> CollaborationEventBus:
        return self._bus

    async def run(
        self,
        session_id: str,
        protocol: Union[CollaborationType, str],
        participants: Sequence[Agent],
        seed: AgentInput,
    ) -> AgentOutput:
        """Run one round; the session record exists only while it runs.

        The first participant is the initiator (the coordinator for
        hierarchical rounds).
        """
        kind = coerce_protocol(protocol)
        async with self.sessions.open(session_id, kind, participants) as session:
            await self._bus.publish(
                CollaborationEvent(
                    kind="session_started",
                    session_id=session_id,
                    payload={"protocol": kind.value, "participants": session.participant_ids},
                )
            )
            outcome: Dict[str, Any] = {"status": "failed"}
            try:
                round_ = self._protocols[kind](session, seed)
                if self.round_timeout:
                    try:
                        output = await asyncio.wait_for(round_, self.round_timeout)
                    except asyncio.TimeoutError:
                        raise RoundTimeoutError(session_id, self.round_timeout) from None
                else:
                    output = await round_
                outcome["status"] = "completed"
                return output
            except DevcrewError as exc:
                outcome["error"] = str(exc)
                logger.warning("%s session %s failed: %s", kind.value, session_id, exc)
                raise
            finally:
                await self._bus.publish(
                    CollaborationEvent(kind="session_ended", session_id=session_id, payload=outcome)
                )

    async def run_sequential(self, session_id: str, participants: Sequence[Agent], seed: AgentInput) -> AgentOutput:
        return await self.run(session_id, CollaborationType.SEQUENTIAL, participants, seed)

    async def run_parallel(self, session_id: str, participants: Sequence[Agent], seed: AgentInput) -> AgentOutput:
        return await self.run(session_id, CollaborationType.PARALLEL, participants, seed)

    async def run_hierarchical(
        self, session_id: str, participants: Sequence[Agent], seed: AgentInput
    ) -> AgentOutput:
        return await self.run(session_id, CollaborationType.HIERARCHICAL, participants, seed)

    async def _sequential(self, session: CollaborationSession, seed: AgentInput) -> AgentOutput:
        agents: List[Agent] = session.participants
        output: Optional[AgentOutput] = None

        for index, agent in enumerate(agents):
            previous = agents[index - 1] if index > 0 else None
            following = agents[index + 1] if index + 1 < len(agents) else None
            if output is None:
                metadata = self._base_metadata(session, seed.metadata)
                prompt = seed.prompt
            else:
                metadata = dict(output.metadata)
                prompt = output.response
            metadata[meta.PREVIOUS_AGENT_ID] = previous.agent_id if previous else None
            metadata[meta.NEXT_AGENT_ID] = following.agent_id if following else None

            hop = AgentInput(prompt=prompt, context=seed.context, files=list(seed.files), metadata=metadata)
            output = await self._call(agent, hop)
            if following is not None:
                await self._bus.message(session.session_id, agent.agent_id, following.agent_id, output.response)

        assert output is not None
        return output

    async def _parallel(self, session: CollaborationSession, seed: AgentInput) -> AgentOutput:
        agents: List[Agent] = session.participants
        initiator = agents[0]
        base = self._base_metadata(session, seed.metadata)
        base[meta.INITIATOR_ID] = initiator.agent_id

        preamble = (
            f"{initiator.name} ({role_title(initiator.role)}) started this parallel round; "
            "the same request was sent to every participant."
        )
        shared_context = f"{preamble}\n\n{seed.context}" if seed.context else preamble
        calls: List[Tuple[Agent, AgentInput]] = [
            (initiator, AgentInput(seed.prompt, seed.context, list(seed.files), dict(base)))
        ]
        calls.extend(
            (agent, AgentInput(seed.prompt, shared_context, list(seed.files), dict(base)))
            for agent in agents[1:]
        )
        outcomes = await self._fan_out(calls)

        blocks: List[str] = []
        actions: List[Action] = []
        executed: List[ExecutedAction] = []
        failures: List[Dict[str, str]] = []
        for agent, outcome in zip(agents, outcomes):
            if isinstance(outcome, ParticipantError):
                blocks.append(f"{label(agent)}: ERROR: {outcome}")
                failures.append({"agent_id": agent.agent_id, "error": str(outcome)})
                continue
            blocks.append(f"{label(agent)}: {outcome.response}")
            actions.extend(outcome.actions)
            executed.extend(outcome.executed_actions)

        metadata = dict(base)
        if failures:
            metadata[meta.FAILURES] = failures
        return AgentOutput(
            response="\n\n".join(blocks),
            actions=actions,
            metadata=metadata,
            executed_actions=executed,
        )

    async def _hierarchical(self, session: CollaborationSession, seed: AgentInput) -> AgentOutput:
        agents: List[Agent] = session.participants
        coordinator, workers = agents[0], agents[1:]
        base = self._base_metadata(session, seed.metadata)
        base[meta.COORDINATOR_AGENT_ID] = coordinator.agent_id

        plan = await self._call(
            coordinator,
            AgentInput(
                prompt=seed.prompt,
                context=seed.context,
                files=list(seed.files),
                metadata={**base, meta.IS_COORDINATOR: True},
            ),
        )
        assignments = assignments_from_output(plan)
        logger.info("Coordinator %s produced %d assignments", coordinator.agent_id, len(assignments))

        by_id = {worker.agent_id: worker for worker in workers}
        calls: List[Tuple[Agent, AgentInput]] = []
        for assignment in assignments:
            worker = by_id.get(assignment.agent_id)
            if worker is None:
                raise UnknownWorkerError(assignment.agent_id, session.session_id)
            calls.append(
                (
                    worker,
                    AgentInput(
                        prompt=assignment.task,
                        context=seed.context,
                        files=list(seed.files),
                        metadata={
                            **plan.metadata,
                            meta.COORDINATOR_AGENT_ID: coordinator.agent_id,
                            meta.IS_COORDINATOR: False,
                            meta.TASK: assignment.task,
                        },
                    ),
                )
            )

        for worker, worker_input in calls:
            await self._bus.message(session.session_id, coordinator.agent_id, worker.agent_id, worker_input.prompt)
        outcomes = await self._fan_out(calls)

        worker_results: List[Dict[str, Any]] = []
        for (worker, _), outcome in zip(calls, outcomes):
            if isinstance(outcome, ParticipantError):
                worker_results.append({"agent_id": worker.agent_id, "output": "", "error": str(outcome)})
                continue
            worker_results.append({"agent_id": worker.agent_id, "output": outcome.response})
            await self._bus.message(session.session_id, worker.agent_id, coordinator.agent_id, outcome.response)

        integration = AgentInput(
            prompt=seed.prompt,
            context=seed.context,
            files=list(seed.files),
            metadata={
                **plan.metadata,
                meta.IS_COORDINATOR: True,
                meta.IS_INTEGRATION: True,
                meta.WORKER_RESULTS: worker_results,
            },
        )
        return await self._call(coordinator, integration)

    async def _fan_out(self, calls: List[Tuple[Agent, AgentInput]]) -> List[Outcome]:
        """Run calls concurrently; results come back in call order."""
        if not calls:
            return []
        tasks = [asyncio.create_task(self._call(agent, agent_input)) for agent, agent_input in calls]

        if self.failure_policy is FailurePolicy.PARTIAL:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException) and not isinstance(result, ParticipantError):
                    raise result
            if all(isinstance(result, ParticipantError) for result in results):
                raise results[0]
            return list(results)

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return [task.result() for task in tasks]

    async def _call(self, agent: Agent, agent_input: AgentInput) -> AgentOutput:
        try:
            return await self._guard.process(agent, agent_input)
        except Exception as exc:  # noqa: BLE001
            raise ParticipantError(agent.agent_id, str(exc)) from exc

    @staticmethod
    def _base_metadata(session: CollaborationSession, seed_metadata: Dict[str, Any]) -> Dict[str, Any]:
        return {
            **seed_metadata,
            meta.SESSION_ID: session.session_id,
            meta.COLLABORATION_TYPE: session.protocol.value,
            meta.PARTICIPANTS: [
                {"id": agent.agent_id, "name": agent.name, "role": agent.role.value}
                for agent in session.participants
            ],
        }
