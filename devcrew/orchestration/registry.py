"""Registry responsible for creating, looking up and removing agents."""
from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Type

from devcrew.agents.base import Agent
from devcrew.core.actions import ActionDispatcher
from devcrew.core.errors import ConfigurationError, NotFoundError
from devcrew.core.models import AgentConfig, AgentDescriptor, AgentRole
from devcrew.orchestration.guard import AgentGuard
from devcrew.services.llm_pool import ModelBackend
from devcrew.services.storage import Storage, StorageNamespace

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Agent factory and lookup table shared by collaborations and workflows."""

    def __init__(
        self,
        *,
        agent_catalog: Dict[str, Type[Agent]],
        backend: Optional[ModelBackend] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        storage: Optional[Storage] = None,
        guard: Optional[AgentGuard] = None,
    ) -> None:
        self._agent_catalog = agent_catalog
        self._backend = backend
        self._dispatcher = dispatcher or ActionDispatcher()
        self._storage = storage
        self._guard = guard
        self._agents: Dict[str, Agent] = {}
        self._lock = asyncio.Lock()

    async def create_agent(self, config: AgentConfig, persist: bool = True) -> Agent:
        """Instantiate and initialize an agent from ``config``."""
        agent_cls = self._resolve_agent_class(config.catalog_key)
        agent_id = config.agent_id or f"{config.role.value}-{uuid.uuid4().hex[:8]}"
        config.agent_id = agent_id

        async with self._lock:
            if agent_id in self._agents:
                raise ConfigurationError(f"Agent '{agent_id}' already exists")
            descriptor = AgentDescriptor(agent_id=agent_id, config=config)
            agent = self._instantiate(agent_cls, descriptor)
            self._agents[agent_id] = agent

        try:
            await agent.initialize(config)
        except Exception:
            async with self._lock:
                self._agents.pop(agent_id, None)
            raise

        logger.info("Created %s agent %s", config.role.value, agent_id)
        if persist:
            await self.save(agent)
        return agent

    async def remove_agent(self, agent_id: str) -> bool:
        async with self._lock:
            agent = self._agents.pop(agent_id, None)
        if agent is None:
            return False
        if self._guard is not None:
            self._guard.forget(agent_id)
        if self._storage is not None:
            await self._storage.delete(StorageNamespace.AGENTS.value, agent_id)
        logger.info("Removed agent %s", agent_id)
        return True

    def list_agents(self) -> Iterable[AgentDescriptor]:
        return (agent.descriptor for agent in self._agents.values())

    def get(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def require(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Unknown agent '{agent_id}'")
        return agent

    def resolve_many(self, agent_ids: List[str]) -> List[Agent]:
        if not agent_ids:
            raise ConfigurationError("At least one agent id is required")
        return [self.require(agent_id) for agent_id in agent_ids]

    def find_by_role(self, role: AgentRole) -> Optional[Agent]:
        return next((agent for agent in self._agents.values() if agent.role == role), None)

    async def save(self, agent: Agent) -> None:
        if self._storage is not None:
            await self._storage.set(StorageNamespace.AGENTS.value, agent.agent_id, agent.snapshot())

    async def load_persisted(self) -> List[Agent]:
        """Recreate agents recorded in storage that are not registered yet."""
        if self._storage is None:
            return []
        restored: List[Agent] = []
        for agent_id in await self._storage.keys(StorageNamespace.AGENTS.value):
            if agent_id in self._agents:
                continue
            data = await self._storage.get(StorageNamespace.AGENTS.value, agent_id)
            if not data:
                continue
            agent = await self.create_agent(AgentConfig.from_dict(data["config"]), persist=False)
            agent.restore(data)
            restored.append(agent)
        return restored

    def _instantiate(self, agent_cls: Type[Agent], descriptor: AgentDescriptor) -> Agent:
        # Pass the model backend to agents that need it
        sig = inspect.signature(agent_cls.__init__)
        if "backend" in sig.parameters:
            if self._backend is None:
                raise ConfigurationError(f"Agent class {agent_cls.__name__} requires a model backend")
            return agent_cls(descriptor, self._backend, self._dispatcher)
        return agent_cls(descriptor, self._dispatcher)

    def _resolve_agent_class(self, key: str) -> Type[Agent]:
        if key not in self._agent_catalog:
            raise ConfigurationError(f"No agent registered for role '{key}'")
        return self._agent_catalog[key]
