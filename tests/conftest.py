"""Shared fixtures: scripted agents that need no model backend."""
from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Sequence, Union

import pytest

from devcrew.agents.base import Agent
from devcrew.core.actions import ActionDispatcher
from devcrew.core.models import AgentConfig, AgentDescriptor, AgentRole
from devcrew.services.tools import RecordingToolServer, ToolRegistry

Reply = Union[str, Exception]


class ScriptedAgent(Agent):
    """Agent replying from a script and recording every prompt it was given."""

    def __init__(
        self,
        descriptor: AgentDescriptor,
        dispatcher: Optional[ActionDispatcher] = None,
        *,
        replies: Union[Sequence[Reply], Callable[[str], Reply], None] = None,
        latency: float = 0.0,
    ) -> None:
        super().__init__(descriptor, dispatcher)
        self._replies = replies
        self._calls = 0
        self.latency = latency
        self.prompts: List[str] = []
        self.inputs = []

    async def process(self, agent_input):
        self.inputs.append(agent_input)
        return await super().process(agent_input)

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._replies is None:
            reply: Reply = f"{self.name} done"
        elif callable(self._replies):
            reply = self._replies(prompt)
        else:
            reply = self._replies[min(self._calls, len(self._replies) - 1)]
        self._calls += 1
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_agent(
    agent_id: str,
    role: AgentRole = AgentRole.CUSTOM,
    *,
    replies: Union[Sequence[Reply], Callable[[str], Reply], None] = None,
    latency: float = 0.0,
    dispatcher: Optional[ActionDispatcher] = None,
) -> ScriptedAgent:
    config = AgentConfig(name=agent_id.title(), role=role, agent_id=agent_id)
    return ScriptedAgent(
        AgentDescriptor(agent_id=agent_id, config=config),
        dispatcher,
        replies=replies,
        latency=latency,
    )


class ScriptedBackend:
    """Model backend returning canned completions."""

    def __init__(self, *replies: Reply) -> None:
        self.replies = list(replies) or ["ok"]
        self.prompts: List[str] = []
        self.options = []

    async def complete(self, prompt, options):
        self.prompts.append(prompt)
        self.options.append(options)
        reply = self.replies[min(len(self.prompts), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def tools() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register("code_generation", RecordingToolServer(name="codegen"))
    registry.register("create_document", RecordingToolServer(name="docs"))
    return registry


@pytest.fixture
def dispatcher(tools: ToolRegistry) -> ActionDispatcher:
    return ActionDispatcher(tools)
