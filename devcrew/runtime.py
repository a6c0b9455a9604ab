"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, Type

from devcrew.agents.base import Agent
from devcrew.agents.echo import EchoAgent
from devcrew.agents.roles import ROLE_AGENTS
from devcrew.config import config
from devcrew.core.actions import ActionDispatcher, ActionType
from devcrew.core.message_bus import CollaborationEventBus
from devcrew.orchestration.collaboration import CollaborationOrchestrator
from devcrew.orchestration.commands import CommandHandler
from devcrew.orchestration.guard import AgentGuard
from devcrew.orchestration.registry import AgentRegistry
from devcrew.orchestration.sessions import SessionStore
from devcrew.services.llm_pool import LLMBackend, LLMPool
from devcrew.services.storage import JsonFileStorage, MemoryStorage, Storage
from devcrew.services.tools import RecordingToolServer, ToolRegistry
from devcrew.workflow.engine import AgentTaskRunner, WorkflowEngine

_AGENT_CATALOG: Dict[str, Type[Agent]] = {
    **ROLE_AGENTS,
    "echo": EchoAgent,
}


@lru_cache
def get_storage() -> Storage:
    if config.storage_dir:
        return JsonFileStorage(Path(config.storage_dir))
    return MemoryStorage()


@lru_cache
def get_tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for action_type in ActionType:
        if action_type is ActionType.TASK_ASSIGNMENT:
            continue
        registry.register(
            action_type.value,
            RecordingToolServer(name=f"{action_type.value}-tools", endpoint=f"local://{action_type.value}"),
        )
    return registry


@lru_cache
def get_llm_pool() -> LLMPool:
    pool = LLMPool()

    if config.azure_openai:
        pool.register_azure_openai(config.azure_openai.deployment_name, config.azure_openai)
    if config.openai:
        pool.register_openai(config.openai.model, config.openai)

    return pool


@lru_cache
def get_backend() -> LLMBackend:
    return LLMBackend(get_llm_pool(), default_model=config.default_model)


@lru_cache
def get_dispatcher() -> ActionDispatcher:
    return ActionDispatcher(get_tool_registry())


@lru_cache
def get_registry() -> AgentRegistry:
    return AgentRegistry(
        agent_catalog=_AGENT_CATALOG,
        backend=get_backend(),
        dispatcher=get_dispatcher(),
        storage=get_storage(),
        guard=get_guard(),
    )


@lru_cache
def get_guard() -> AgentGuard:
    return AgentGuard()


@lru_cache
def get_bus() -> CollaborationEventBus:
    return CollaborationEventBus()


@lru_cache
def get_orchestrator() -> CollaborationOrchestrator:
    return CollaborationOrchestrator(
        sessions=SessionStore(),
        guard=get_guard(),
        bus=get_bus(),
        failure_policy=config.collaboration.failure_policy,
        round_timeout=config.collaboration.round_timeout,
    )


@lru_cache
def get_engine() -> WorkflowEngine:
    runner = AgentTaskRunner(get_registry(), get_orchestrator(), get_guard())
    return WorkflowEngine(runner, storage=get_storage())


@lru_cache
def get_command_handler() -> CommandHandler:
    return CommandHandler(
        registry=get_registry(),
        orchestrator=get_orchestrator(),
        engine=get_engine(),
    )
