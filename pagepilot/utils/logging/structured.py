"""
Structured event logging.

Events are plain log records on the ``pagepilot`` logger that carry a
``structured_data`` dict. The development formatter below renders them as
one readable line per event.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .context import get_correlation_id, get_operation_context

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "pagepilot"


class StructuredLogger:
    """
    Emits named events with a correlation id and any active operation
    context merged into the payload.
    """

    def __init__(self, name: str = ROOT_LOGGER_NAME):
        self.logger = logging.getLogger(name)

    def event(
        self,
        event_name: str,
        data: Optional[Dict[str, Any]] = None,
        level: int = logging.INFO,
    ) -> None:
        payload: Dict[str, Any] = {
            "event": event_name,
            "correlation_id": get_correlation_id(),
            **get_operation_context(),
            **(data or {}),
        }
        record = self.logger.makeRecord(
            self.logger.name, level, "(structured)", 0, event_name, (), None
        )
        record.structured_data = payload
        self.logger.handle(record)


_event_logger: Optional[StructuredLogger] = None


def get_structured_logger() -> StructuredLogger:
    global _event_logger
    if _event_logger is None:
        _event_logger = StructuredLogger()
    return _event_logger


def log_event(
    event_name: str, data: Optional[Dict[str, Any]] = None, level: int = logging.INFO
) -> None:
    """
    Log one structured event.

    Example::

        log_event("circuit_opened", {"provider_id": "openai"}, level=logging.WARNING)
    """
    get_structured_logger().event(event_name, data, level)


def _duration(data: Dict[str, Any]) -> str:
    ms = data.get("duration_ms", 0)
    return f"{ms / 1000:.1f}s" if ms >= 1000 else f"{ms}ms"


def _shorten(text: str, limit: int = 60) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


_SUMMARIES: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "operation_started": lambda d: f"🚀 {d.get('operation')} started",
    "operation_completed": lambda d: f"⏱️ {_duration(d)} {d.get('operation')}",
    "operation_failed": lambda d: (
        f"❌ {d.get('operation')} failed "
        f"({d.get('error_type', 'Error')}: {_shorten(d.get('error_message', ''))})"
    ),
    "operation_cancelled": lambda d: f"🚫 {d.get('operation')} cancelled",
    "circuit_opened": lambda d: f"🔌 {d.get('provider_id')}: circuit open",
    "circuit_half_open": lambda d: f"🔌 {d.get('provider_id')}: circuit half-open",
    "circuit_closed": lambda d: f"🔌 {d.get('provider_id')}: circuit closed",
    "quota_alert": lambda d: f"💸 {d.get('level')}: {d.get('message')}",
    "chat_succeeded": lambda d: (
        f"✅ chat via {d.get('provider_id')} "
        f"({d.get('attempts', 1)} attempt(s), {d.get('total_tokens', 0)} tokens)"
    ),
    "chat_candidate_skipped": lambda d: (
        f"⏭️ {d.get('provider_id')} skipped ({d.get('reason')})"
    ),
    "chat_attempt_failed": lambda d: (
        f"⚠️ {d.get('provider_id')} attempt {d.get('attempt')} failed "
        f"({d.get('error_type')})"
    ),
    "chat_all_providers_failed": lambda d: (
        "🛑 all providers failed: "
        f"{[a.get('provider_id') for a in d.get('attempts') or []]}"
    ),
}


class DevelopmentFormatter(logging.Formatter):
    """``HH:MM:SS.mmm | LEVEL | summary``, one line per record."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        data: Optional[Dict[str, Any]] = getattr(record, "structured_data", None)

        if not data:
            body = record.getMessage()
        else:
            event = data.get("event", "")
            summarize = _SUMMARIES.get(event)
            if summarize is not None:
                body = summarize(data)
            else:
                pairs = " ".join(
                    f"{k}={v}"
                    for k, v in data.items()
                    if k not in ("event", "correlation_id")
                )
                body = f"📝 {event} {pairs}".rstrip()

        return f"{timestamp} | {record.levelname:5} | {body}"


def create_development_formatter() -> logging.Formatter:
    return DevelopmentFormatter()
