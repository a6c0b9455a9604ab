"""LLM client pool and the model backend capability agents complete against."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Union

from openai import AsyncAzureOpenAI, AsyncOpenAI

from devcrew.config import AzureOpenAIConfig, OpenAIConfig
from devcrew.core.errors import BackendError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOptions:
    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None


class ModelBackend(Protocol):
    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        ...


class LLMPool:
    """Manages shared LLM clients with concurrency limiting."""

    def __init__(self) -> None:
        self._configs: Dict[str, Union[AzureOpenAIConfig, OpenAIConfig]] = {}
        self._clients: Dict[str, Any] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}

    def register_azure_openai(self, name: str, config: AzureOpenAIConfig) -> None:
        """Register an Azure OpenAI model configuration."""
        self._configs[name] = config
        self._semaphores[name] = asyncio.Semaphore(config.max_concurrent)

    def register_openai(self, name: str, config: OpenAIConfig) -> None:
        self._configs[name] = config
        self._semaphores[name] = asyncio.Semaphore(config.max_concurrent)

    def register_client(self, name: str, client: Any, max_concurrent: int = 10) -> None:
        """Register an already constructed chat-completions client."""
        self._clients[name] = client
        self._semaphores[name] = asyncio.Semaphore(max_concurrent)

    @property
    def models(self) -> list:
        return sorted(self._semaphores)

    @asynccontextmanager
    async def acquire(self, model_name: str) -> AsyncIterator[Any]:
        """Acquire access to a model client with concurrency control."""
        if model_name not in self._semaphores:
            raise KeyError(f"Model '{model_name}' not registered in LLM pool")

        semaphore = self._semaphores[model_name]
        await semaphore.acquire()

        try:
            # Lazy initialization on first use
            if model_name not in self._clients:
                self._clients[model_name] = self._create_client(model_name)

            yield self._clients[model_name]
        finally:
            semaphore.release()

    def _create_client(self, model_name: str) -> Any:
        config = self._configs[model_name]

        if isinstance(config, AzureOpenAIConfig):
            return AsyncAzureOpenAI(
                api_key=config.api_key,
                api_version=config.api_version,
                azure_endpoint=config.endpoint,
            )
        return AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)


class LLMBackend:
    """``complete(prompt, options)`` on top of the pooled chat-completions clients."""

    def __init__(self, pool: LLMPool, default_model: Optional[str] = None) -> None:
        self._pool = pool
        self._default_model = default_model

    async def complete(self, prompt: str, options: CompletionOptions) -> str:
        model_name = options.model or self._default_model
        if not model_name:
            raise BackendError("No model configured for completion")

        try:
            async with self._pool.acquire(model_name) as client:
                kwargs: Dict[str, Any] = {
                    "model": model_name,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": options.temperature,
                }
                if options.max_tokens:
                    kwargs["max_tokens"] = options.max_tokens
                response = await client.chat.completions.create(**kwargs)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Completion against %s failed: %s", model_name, exc)
            raise BackendError(str(exc)) from exc

        content = response.choices[0].message.content
        return content or ""
