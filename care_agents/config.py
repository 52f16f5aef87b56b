"""Configuration management for the agent queue service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_MODEL = "gpt-4-turbo-preview"


@dataclass(frozen=True)
class OpenAIConfig:
    """OpenAI API configuration."""

    api_key: str
    base_url: Optional[str] = None
    model: str = DEFAULT_MODEL
    transcription_model: str = "whisper-1"
    max_concurrent: int = 10


@dataclass(frozen=True)
class AzureOpenAIConfig:
    """Azure OpenAI service configuration."""

    api_key: str
    endpoint: str
    api_version: str = "2024-02-15-preview"
    deployment_name: str = "gpt-4"
    max_concurrent: int = 50


@dataclass(frozen=True)
class QueueSettings:
    """Dispatch loop tuning."""

    tick_interval: float = 1.0
    batch_size: int = 5
    retry_base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay must not be negative")


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    openai: Optional[OpenAIConfig] = None
    azure_openai: Optional[AzureOpenAIConfig] = None
    queue: QueueSettings = field(default_factory=QueueSettings)
    log_level: str = "INFO"
    environment: str = "development"

    @property
    def default_model(self) -> str:
        if self.openai:
            return self.openai.model
        if self.azure_openai:
            return self.azure_openai.deployment_name
        return DEFAULT_MODEL

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        openai_config = None
        openai_key = os.getenv("OPENAI_API_KEY")
        if openai_key:
            openai_config = OpenAIConfig(
                api_key=openai_key,
                base_url=os.getenv("OPENAI_BASE_URL") or None,
                model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
                transcription_model=os.getenv("OPENAI_TRANSCRIPTION_MODEL", "whisper-1"),
                max_concurrent=int(os.getenv("OPENAI_MAX_CONCURRENT", "10")),
            )

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

        queue = QueueSettings(
            tick_interval=float(os.getenv("AGENT_QUEUE_TICK_INTERVAL", "1.0")),
            batch_size=int(os.getenv("AGENT_QUEUE_BATCH_SIZE", "5")),
            retry_base_delay=float(os.getenv("AGENT_QUEUE_RETRY_BASE_DELAY", "1.0")),
        )

        return cls(
            openai=openai_config,
            azure_openai=azure_config,
            queue=queue,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            environment=os.getenv("ENVIRONMENT", "development"),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install a basic root handler at ``level``."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
