"""
Correlation ids for request-scoped logging.

Every chat dispatch runs under its own correlation id so that the events
emitted by the orchestrator, the health monitor and the cost tracker for one
request can be grouped together.
"""

import contextvars
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
_operation_context: contextvars.ContextVar[Optional[Dict[str, Any]]] = (
    contextvars.ContextVar("operation_context", default=None)
)


def new_correlation_id() -> str:
    """Generate a fresh correlation id."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """
    Get the current correlation ID, generating one if none exists.

    Returns:
        Correlation ID string for tracking requests across components
    """
    correlation_id = _correlation_id.get()
    if correlation_id is None:
        correlation_id = new_correlation_id()
        _correlation_id.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


def get_operation_context() -> Dict[str, Any]:
    """Get a copy of the operation-scoped context dictionary."""
    context = _operation_context.get()
    return context.copy() if context is not None else {}


@contextmanager
def operation_context(**values: Any) -> Iterator[Dict[str, Any]]:
    """
    Attach extra fields to every event logged inside the block.

    Example::

        with operation_context(provider_id="openai"):
            log_event("chat_attempt_failed", {...})
    """
    current = get_operation_context()
    current.update(values)
    token = _operation_context.set(current)
    try:
        yield current
    finally:
        _operation_context.reset(token)


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Run the block under its own correlation id, restoring the previous one
    on exit.
    """
    scoped = correlation_id or new_correlation_id()
    token = _correlation_id.set(scoped)
    try:
        yield scoped
    finally:
        _correlation_id.reset(token)
