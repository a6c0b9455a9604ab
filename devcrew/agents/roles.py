"""The fixed roster of software-development roles."""
from __future__ import annotations

from typing import ClassVar, Dict, FrozenSet, Tuple, Type

from devcrew.agents.llm_agent import LLMAgent
from devcrew.core.actions import ActionType
from devcrew.core.models import AgentCapability, AgentRole

ACTION_FORMAT = """When you need a tool to act, emit an action block:

[ACTION:<action_type>]
<JSON payload>
[/ACTION]

Action types available to you: {types}"""


class RoleAgent(LLMAgent):
    """LLM agent with role defaults for prompt, capabilities and action types."""

    role_value: ClassVar[AgentRole] = AgentRole.CUSTOM
    default_capabilities: ClassVar[FrozenSet[AgentCapability]] = frozenset()
    action_types: ClassVar[Tuple[ActionType, ...]] = ()
    persona: ClassVar[str] = "You are a member of a software development team."

    async def on_initialize(self) -> None:
        config = self.config
        if config.role is AgentRole.CUSTOM:
            config.role = self.role_value
        if not config.capabilities:
            config.capabilities = set(self.default_capabilities)
        if not config.system_prompt:
            config.system_prompt = self.role_prompt()

    def role_prompt(self) -> str:
        if not self.action_types:
            return self.persona
        types = ", ".join(action.value for action in self.action_types)
        return f"{self.persona}\n\n{ACTION_FORMAT.format(types=types)}"


class AnalystAgent(RoleAgent):
    role_value = AgentRole.ANALYST
    default_capabilities = frozenset({AgentCapability.REQUIREMENTS_ANALYSIS})
    action_types = (ActionType.REQUIREMENTS, ActionType.CREATE_DOCUMENT)
    persona = (
        "You are a requirements analyst. Turn requests into clear user stories, "
        "acceptance criteria and open questions."
    )


class ArchitectAgent(RoleAgent):
    role_value = AgentRole.ARCHITECT
    default_capabilities = frozenset({AgentCapability.SYSTEM_DESIGN, AgentCapability.CODE_REVIEW})
    action_types = (ActionType.DESIGN, ActionType.CREATE_DOCUMENT, ActionType.CODE_ANALYSIS)
    persona = (
        "You are a software architect. Propose components, interfaces, data flow "
        "and the trade-offs behind them."
    )


class DeveloperAgent(RoleAgent):
    role_value = AgentRole.DEVELOPER
    default_capabilities = frozenset({AgentCapability.CODE_GENERATION, AgentCapability.CODE_REVIEW})
    action_types = (
        ActionType.CODE_GENERATION,
        ActionType.CODE_ANALYSIS,
        ActionType.VERSION_CONTROL,
        ActionType.TESTING,
    )
    persona = "You are a senior developer. Write working, idiomatic code and explain changes briefly."


class TesterAgent(RoleAgent):
    role_value = AgentRole.TESTER
    default_capabilities = frozenset({AgentCapability.TESTING})
    action_types = (ActionType.TESTING, ActionType.CODE_ANALYSIS)
    persona = "You are a test engineer. Design test cases, find defects and report them precisely."


class OpsAgent(RoleAgent):
    role_value = AgentRole.OPS
    default_capabilities = frozenset({AgentCapability.DEPLOYMENT})
    action_types = (ActionType.DEPLOYMENT, ActionType.VERSION_CONTROL)
    persona = "You are an operations engineer. Plan builds, deployments, monitoring and rollbacks."


class WriterAgent(RoleAgent):
    role_value = AgentRole.WRITER
    default_capabilities = frozenset({AgentCapability.DOCUMENTATION})
    action_types = (ActionType.CREATE_DOCUMENT,)
    persona = "You are a technical writer. Produce accurate, well-structured documentation."


ROLE_AGENTS: Dict[str, Type[RoleAgent]] = {
    AgentRole.ANALYST.value: AnalystAgent,
    AgentRole.ARCHITECT.value: ArchitectAgent,
    AgentRole.DEVELOPER.value: DeveloperAgent,
    AgentRole.TESTER.value: TesterAgent,
    AgentRole.OPS.value: OpsAgent,
    AgentRole.WRITER.value: WriterAgent,
    AgentRole.CUSTOM.value: RoleAgent,
}
