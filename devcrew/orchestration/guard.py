"""Caller-side serialization of ``process`` calls per agent instance."""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict

from devcrew.agents.base import Agent
from devcrew.core.models import AgentInput, AgentOutput


class AgentGuard:
    """Ensure at most one in-flight ``process`` call per agent id.

    Agents give no reentrancy guarantee, so every component that calls
    ``process`` goes through one shared guard.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def process(self, agent: Agent, agent_input: AgentInput) -> AgentOutput:
        async with self._locks[agent.agent_id]:
            return await agent.process(agent_input)

    def busy(self, agent_id: str) -> bool:
        lock = self._locks.get(agent_id)
        return lock is not None and lock.locked()

    def forget(self, agent_id: str) -> None:
        """Drop the lock of a removed agent unless a call still holds it."""
        lock = self._locks.get(agent_id)
        if lock is not None and not lock.locked():
            del self._locks[agent_id]
