"""
``@track``: start / finish / failure events for one operation.

Adapters, the credential service and ``LLMService.chat`` are wrapped so each
call leaves an ``operation_started`` event and then exactly one of
``operation_completed``, ``operation_failed`` or ``operation_cancelled``.
Keyword arguments can be attached to the start event; anything that looks
like a secret is redacted and bulky payloads are reduced to their size.
"""

import asyncio
import functools
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union, cast

from .context import get_correlation_id
from .structured import log_event

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


class LogConfig:
    SAMPLE_RATES = {
        "high_frequency": 0.1,
        "medium_frequency": 0.5,
        "low_frequency": 1.0,
    }

    # Substring match against argument names
    SENSITIVE_KEYS = ("password", "token", "secret", "key", "auth")
    BULKY_KEYS = ("content", "text", "data", "body", "messages", "chunks")
    MAX_ARG_LENGTH = 100

    # Substring match against operation names; never sampled out
    CRITICAL_OPS = ("chat", "rotate", "reset", "disable", "enable", "import")


def track(
    operation: Optional[str] = None,
    frequency: str = "low_frequency",
    include_args: Union[bool, List[str]] = False,
    track_performance: bool = True,
    level: int = logging.INFO,
):
    """
    Decorate a sync or async callable with operation events.

    Args:
        operation: Event ``operation`` field (defaults to the qualified name)
        frequency: Sampling class from ``LogConfig.SAMPLE_RATES``
        include_args: True for every keyword argument, or a list of names
        track_performance: Add ``duration_ms`` to the finishing event
        level: Level of the started and completed events

    Example::

        @track(operation="anthropic_generate", include_args=["model"])
        async def generate(self, messages, api_key, *, model=None): ...
    """

    def decorator(func: F) -> F:
        name = operation or func.__qualname__.replace(".", "_").lower()

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                if not _sampled(name, frequency):
                    return await func(*args, **kwargs)
                call = _TrackedCall(name, level, track_performance)
                call.start(kwargs, include_args)
                try:
                    result = await func(*args, **kwargs)
                except BaseException as e:
                    call.finish(error=e)
                    raise
                call.finish(result=result)
                return result

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            if not _sampled(name, frequency):
                return func(*args, **kwargs)
            call = _TrackedCall(name, level, track_performance)
            call.start(kwargs, include_args)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                call.finish(error=e)
                raise
            call.finish(result=result)
            return result

        return cast(F, sync_wrapper)

    return decorator


class _TrackedCall:
    def __init__(self, operation: str, level: int, timed: bool):
        self.operation = operation
        self.level = level
        self.started_at = time.perf_counter() if timed else None
        self.correlation_id = get_correlation_id()

    def _base(self) -> Dict[str, Any]:
        return {"operation": self.operation, "correlation_id": self.correlation_id}

    def start(self, kwargs: Dict[str, Any], include_args: Union[bool, List[str]]) -> None:
        data = self._base()
        if include_args:
            wanted = kwargs.keys() if include_args is True else include_args
            data.update(
                {f"arg_{k}": _safe_value(k, kwargs[k]) for k in wanted if k in kwargs}
            )
        log_event("operation_started", data, self.level)

    def finish(
        self, result: Any = None, error: Optional[BaseException] = None
    ) -> None:
        data = self._base()
        data["success"] = error is None
        if self.started_at is not None:
            data["duration_ms"] = int((time.perf_counter() - self.started_at) * 1000)

        if error is None:
            data.update(_describe_result(result))
            log_event("operation_completed", data, self.level)
            return

        data["error_type"] = type(error).__name__
        data["error_message"] = str(error)
        if isinstance(error, asyncio.CancelledError):
            log_event("operation_cancelled", data, logging.WARNING)
        else:
            log_event("operation_failed", data, logging.ERROR)


def _sampled(operation: str, frequency: str) -> bool:
    lowered = operation.lower()
    if any(op in lowered for op in LogConfig.CRITICAL_OPS):
        return True
    return random.random() < LogConfig.SAMPLE_RATES.get(frequency, 1.0)


def _safe_value(name: str, value: Any) -> Any:
    lowered = name.lower()
    if any(s in lowered for s in LogConfig.SENSITIVE_KEYS):
        return "[REDACTED]"

    if isinstance(value, (list, tuple)) and lowered in LogConfig.BULKY_KEYS:
        return f"<{len(value)} items>"

    if isinstance(value, str):
        if len(value) <= LogConfig.MAX_ARG_LENGTH:
            return value
        if lowered in LogConfig.BULKY_KEYS:
            return f"<{len(value)} chars>"
        return value[: LogConfig.MAX_ARG_LENGTH] + "..."

    if value is None or isinstance(value, (bool, int, float)):
        return value
    return f"<{type(value).__name__}>"


def _describe_result(result: Any) -> Dict[str, Any]:
    if result is None:
        return {}
    info: Dict[str, Any] = {"result_type": type(result).__name__}
    if isinstance(result, bool):
        info["result_value"] = result
    elif isinstance(result, (str, list, tuple)):
        info["result_length"] = len(result)
    elif isinstance(result, dict):
        info["result_keys_count"] = len(result)
    return info
