"""
Application settings and configuration.
"""

import logging
import sys
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from ..llm.constants import DEFAULT_PROVIDER_PRIORITY


class Settings(BaseSettings):
    """Orchestrator settings with environment variable support."""

    # Services
    redis_url: str = Field(default="redis://localhost:6379", description="Redis URL")
    ollama_url: str = Field(default="http://localhost:11434", description="Ollama URL")
    log_level: str = Field(default="INFO", description="Log level")

    # Retry
    max_retries: int = Field(default=3, ge=1, description="Attempts per provider")
    retry_base_delay_seconds: float = Field(
        default=1.0, ge=0, description="Initial backoff delay"
    )
    retry_max_delay_seconds: float = Field(
        default=10.0, ge=0, description="Backoff delay cap"
    )
    attempt_timeout_seconds: float = Field(
        default=60.0, gt=0, description="Timeout for one blocking attempt"
    )
    stream_timeout_seconds: float = Field(
        default=300.0, gt=0, description="Timeout for one streaming attempt"
    )

    # Circuit breaker
    failure_threshold: int = Field(
        default=3, ge=1, description="Consecutive failures before the circuit opens"
    )
    reset_timeout_seconds: float = Field(
        default=60.0, ge=0, description="Time an open circuit waits before probing"
    )
    half_open_requests: int = Field(
        default=1, ge=1, description="Successful trials needed to close the circuit"
    )
    degraded_threshold: float = Field(
        default=0.80, ge=0, le=1, description="Success rate below which a provider is degraded"
    )
    unhealthy_threshold: float = Field(
        default=0.50, ge=0, le=1, description="Success rate below which a provider is unhealthy"
    )

    # Quotas
    quota_warning_threshold: float = Field(default=0.75, ge=0, le=1)
    quota_critical_threshold: float = Field(default=0.90, ge=0, le=1)
    alert_suppression_seconds: float = Field(
        default=3600.0, ge=0, description="Minimum time between alerts per provider"
    )

    # Providers
    provider_priority: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PROVIDER_PRIORITY),
        description="Fallback order, local and free providers first",
    )
    enabled_providers: Optional[List[str]] = Field(
        default=None, description="Providers to register (None means all)"
    )

    # Safety
    permission_level: str = Field(default="medium", description="low, medium or high")

    class Config:
        env_prefix = "PAGEPILOT_"
        env_file = ".env"

    @field_validator("permission_level")
    @classmethod
    def _check_permission_level(cls, value: str) -> str:
        value = value.lower()
        if value not in ("low", "medium", "high"):
            raise ValueError(f"permission_level must be low, medium or high: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level: {value}")
        return value


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging with development-friendly structured output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    from ..utils.logging.structured import (
        ROOT_LOGGER_NAME,
        create_development_formatter,
    )

    log_level = getattr(logging, level.upper())

    # Configure only our application logger (pagepilot.*)
    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.setLevel(log_level)

    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(create_development_formatter())
    app_logger.addHandler(console_handler)

    # Prevent propagation to root logger to avoid duplication
    app_logger.propagate = False


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
