"""Configuration management for the devcrew runtime."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AzureOpenAIConfig:
    """Azure OpenAI service configuration."""

    api_key: str
    endpoint: str
    api_version: str = "2024-02-15-preview"
    deployment_name: str = "gpt-4"
    max_concurrent: int = 50


@dataclass(frozen=True)
class OpenAIConfig:
    """OpenAI (or compatible endpoint) configuration."""

    api_key: str
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    max_concurrent: int = 20


@dataclass(frozen=True)
class CollaborationSettings:
    failure_policy: str = "abort"
    round_timeout: Optional[float] = None


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    azure_openai: Optional[AzureOpenAIConfig] = None
    openai: Optional[OpenAIConfig] = None
    collaboration: CollaborationSettings = CollaborationSettings()
    storage_dir: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None
    environment: str = "development"

    @property
    def default_model(self) -> Optional[str]:
        if self.azure_openai:
            return self.azure_openai.deployment_name
        if self.openai:
            return self.openai.model
        return None

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        azure_key = os.getenv("AZURE_OPENAI_KEY")
        azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")

        azure_config = None
        if azure_key and azure_endpoint:
            azure_config = AzureOpenAIConfig(
                api_key=azure_key,
                endpoint=azure_endpoint,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
                deployment_name=os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-4"),
                max_concurrent=int(os.getenv("AZURE_OPENAI_MAX_CONCURRENT", "50")),
            )

        openai_config = None
        openai_key = os.getenv("OPENAI_API_KEY")
        if openai_key:
            openai_config = OpenAIConfig(
                api_key=openai_key,
                base_url=os.getenv("OPENAI_BASE_URL") or None,
                model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
                max_concurrent=int(os.getenv("OPENAI_MAX_CONCURRENT", "20")),
            )

        timeout = os.getenv("DEVCREW_ROUND_TIMEOUT")
        collaboration = CollaborationSettings(
            failure_policy=os.getenv("DEVCREW_FAILURE_POLICY", "abort").lower(),
            round_timeout=float(timeout) if timeout else None,
        )

        return cls(
            azure_openai=azure_config,
            openai=openai_config,
            collaboration=collaboration,
            storage_dir=os.getenv("DEVCREW_STORAGE_DIR") or None,
            log_level=os.getenv("DEVCREW_LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("DEVCREW_LOG_FILE") or None,
            environment=os.getenv("ENVIRONMENT", "development"),
        )


# Global config instance
config = Config.from_env()
