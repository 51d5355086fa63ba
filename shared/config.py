"""
Shared configuration management for the rules engine.
"""

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level for structlog/stdlib")


class EngineConfig(BaseConfig):
    """Engine-specific configuration."""

    engine_name: str = Field(default="rules_engine", description="Logger and metrics namespace")

    # Evaluation
    allow_undefined_facts: bool = Field(
        default=False,
        description="Treat conditions on unknown facts as false instead of raising"
    )

    # Observability
    enable_metrics: bool = Field(default=True, description="Attach a Prometheus metrics collector")


def get_config(**overrides: Any) -> EngineConfig:
    """Get engine configuration, environment first, explicit overrides last."""
    return EngineConfig(**overrides)
