"""LLM-powered agent that completes prompts through a model backend."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from devcrew.agents.base import Agent
from devcrew.services.llm_pool import CompletionOptions

if TYPE_CHECKING:
    from devcrew.core.actions import ActionDispatcher
    from devcrew.core.models import AgentDescriptor
    from devcrew.services.llm_pool import ModelBackend


class LLMAgent(Agent):
    """Agent that uses a language model to answer instructions."""

    default_system_prompt = "You are a helpful AI assistant agent in a multi-agent software team."

    def __init__(
        self,
        descriptor: AgentDescriptor,
        backend: ModelBackend,
        dispatcher: Optional[ActionDispatcher] = None,
    ) -> None:
        super().__init__(descriptor, dispatcher)
        self._backend = backend

    async def on_initialize(self) -> None:
        if not self.config.system_prompt:
            self.config.system_prompt = self.default_system_prompt

    async def generate(self, prompt: str) -> str:
        options = CompletionOptions(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        return await self._backend.complete(prompt, options)
