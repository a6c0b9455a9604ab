"""Base agent definition used by the orchestrator and the workflow engine."""
from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from devcrew.agents.prompts import collaboration_preamble
from devcrew.core import metadata as meta
from devcrew.core.actions import ActionDispatcher, extract_actions
from devcrew.core.models import (
    Action,
    AgentCapability,
    AgentConfig,
    AgentDescriptor,
    AgentInput,
    AgentOutput,
    AgentRole,
    AgentState,
    utcnow,
)

logger = logging.getLogger(__name__)


class Agent(abc.ABC):
    """Abstract agent encapsulating the lifecycle state machine and action handling.

    Subclasses only supply :meth:`generate`. ``process`` always leaves the agent in
    ``IDLE`` or ``ERROR``; callers must not invoke it while the agent reports
    ``PROCESSING``.
    """

    def __init__(
        self,
        descriptor: AgentDescriptor,
        dispatcher: Optional[ActionDispatcher] = None,
    ) -> None:
        self.descriptor = descriptor
        self._dispatcher = dispatcher or ActionDispatcher()
        self.context: Dict[str, Any] = {}

    @property
    def agent_id(self) -> str:
        return self.descriptor.agent_id

    @property
    def config(self) -> AgentConfig:
        return self.descriptor.config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def role(self) -> AgentRole:
        return self.config.role

    @property
    def capabilities(self) -> Set[AgentCapability]:
        return self.config.capabilities

    @property
    def state(self) -> AgentState:
        return self.descriptor.state

    def get_state(self) -> AgentState:
        return self.descriptor.state

    def set_state(self, state: AgentState) -> None:
        """Operator override, e.g. to clear ``ERROR`` after a failed round."""
        self.descriptor.state = state

    async def initialize(self, config: Optional[AgentConfig] = None) -> None:
        """Apply ``config`` and run the subclass hook."""
        if config is not None:
            self.descriptor.config = config
        self.descriptor.state = AgentState.INITIALIZING
        succeeded = False
        try:
            await self.on_initialize()
            succeeded = True
        except Exception as exc:
            self.descriptor.last_error = str(exc)
            logger.error("Agent %s failed to initialize: %s", self.agent_id, exc)
            raise
        finally:
            self.descriptor.state = AgentState.IDLE if succeeded else AgentState.ERROR

    async def process(self, agent_input: AgentInput) -> AgentOutput:
        """Turn an instruction into a response plus executed actions."""
        self.descriptor.state = AgentState.PROCESSING
        succeeded = False
        try:
            prompt = self.build_prompt(agent_input)
            reply = await self.generate(prompt)
            message, actions = self.parse_response(reply)
            executed = await self._dispatcher.execute_all(actions)
            output = AgentOutput(
                response=message,
                actions=actions,
                metadata={
                    **agent_input.metadata,
                    "processed_by": self.agent_id,
                    "processed_at": utcnow().isoformat(),
                },
                executed_actions=executed,
            )
            self._remember(agent_input, output)
            succeeded = True
            return output
        except Exception as exc:
            self.descriptor.last_error = str(exc)
            logger.error("Agent %s failed to process input: %s", self.agent_id, exc)
            raise
        finally:
            if succeeded:
                self.descriptor.task_count += 1
            self.descriptor.state = AgentState.IDLE if succeeded else AgentState.ERROR

    def build_prompt(self, agent_input: AgentInput) -> str:
        sections: List[str] = []
        if self.config.system_prompt:
            sections.append(self.config.system_prompt)
        preamble = collaboration_preamble(agent_input.metadata)
        if preamble:
            sections.append(preamble)
        if agent_input.context:
            sections.append(f"Context:\n{agent_input.context}")
        if agent_input.files:
            files = "\n\n".join(
                f"File: {ref.path}\n{ref.content}" for ref in agent_input.files
            )
            sections.append(f"Files:\n{files}")
        sections.append(f"Request: {agent_input.prompt}")
        return "\n\n".join(sections)

    def parse_response(self, reply: str) -> Tuple[str, List[Action]]:
        return extract_actions(reply)

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the agent for storage."""
        return {
            "agent_id": self.agent_id,
            "config": self.config.to_dict(),
            "task_count": self.descriptor.task_count,
            "context": dict(self.context),
        }

    def restore(self, data: Dict[str, Any]) -> None:
        self.descriptor.task_count = int(data.get("task_count", 0))
        self.context = dict(data.get("context", {}))

    def _remember(self, agent_input: AgentInput, output: AgentOutput) -> None:
        self.context["last_prompt"] = agent_input.prompt
        self.context["last_response"] = output.response
        session_id = agent_input.metadata.get(meta.SESSION_ID)
        if session_id:
            self.context["last_session_id"] = session_id

    @abc.abstractmethod
    async def generate(self, prompt: str) -> str:
        """Produce the raw reply text for a fully built prompt."""

    async def on_initialize(self) -> None:
        """Hook executed while the agent is ``INITIALIZING``."""
        return None
