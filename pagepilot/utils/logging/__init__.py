"""
Logging utilities for pagepilot.

Usage::

    from pagepilot.utils.logging import log_event, track

    @track(operation="chat", include_args=["provider_id"])
    async def chat(...):
        log_event("chat_succeeded", {"provider_id": "openai"})
"""

from .context import (
    correlation_scope,
    get_correlation_id,
    new_correlation_id,
    operation_context,
    set_correlation_id,
)
from .smart_logger import LogConfig, track
from .structured import (
    ROOT_LOGGER_NAME,
    StructuredLogger,
    create_development_formatter,
    get_structured_logger,
    log_event,
)

__all__ = [
    "LogConfig",
    "ROOT_LOGGER_NAME",
    "StructuredLogger",
    "correlation_scope",
    "create_development_formatter",
    "get_correlation_id",
    "get_structured_logger",
    "log_event",
    "new_correlation_id",
    "operation_context",
    "set_correlation_id",
    "track",
]
