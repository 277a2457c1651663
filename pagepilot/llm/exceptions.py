"""
Structured exception hierarchy for LLM providers and the orchestrator.

Adapters raise ``LLMProviderError`` subclasses; the orchestrator reads
``retryable`` to decide between backoff and immediate fallback. Only
``AllProvidersFailedError``, ``StreamingError`` and ``ChatCancelledError``
ever leave ``LLMService.chat``.
"""

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional

import aiohttp


class LLMProviderError(Exception):
    """
    Base exception for all LLM provider errors.

    Attributes:
        message: Human-readable error message
        provider_id: Identifier of the provider that raised the error
        model: Model identifier (if applicable)
        error_type: Categorization of error type
        retryable: Whether the operation can be retried
        metadata: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        provider_id: str,
        model: Optional[str] = None,
        error_type: str = "unknown",
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id
        self.model = model
        self.error_type = error_type
        self.retryable = retryable
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_type": self.error_type,
            "provider_id": self.provider_id,
            "model": self.model,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider_id:
            parts.append(f"(provider: {self.provider_id})")
        if self.model:
            parts.append(f"(model: {self.model})")
        return " ".join(parts)


class ProviderAPIError(LLMProviderError):
    """
    Non-2xx reply from a provider API.

    Subclasses only pick the default retryability; the error type string
    is derived from the status code.

    Attributes:
        status_code: HTTP status code
        response_body: Raw response body (truncated in metadata)
    """

    RETRYABLE = False

    def __init__(
        self,
        message: str,
        provider_id: str,
        status_code: int,
        response_body: str = "",
        model: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(
            message=message,
            provider_id=provider_id,
            model=model,
            error_type=_STATUS_ERROR_TYPES.get(status_code)
            or ("server_error" if 500 <= status_code < 600 else "api_error"),
            retryable=self.RETRYABLE if retryable is None else retryable,
            metadata={
                "status_code": status_code,
                "response_body": response_body[:1000],
            },
        )
        self.status_code = status_code
        self.response_body = response_body


_STATUS_ERROR_TYPES = {
    400: "invalid_request",
    401: "authentication_error",
    402: "insufficient_credits",
    403: "permission_denied",
    404: "not_found",
    429: "rate_limit_exceeded",
}


class AuthenticationError(ProviderAPIError):
    """Invalid, expired or under-privileged API key (401/403)."""


class InsufficientCreditsError(ProviderAPIError):
    """Account has no credit left for the request (402)."""


class ModelNotFoundError(ProviderAPIError):
    """Requested model does not exist or is not available (404)."""


class InvalidRequestError(ProviderAPIError):
    """Any other 4xx: the request itself is malformed."""


class ServerError(ProviderAPIError):
    """Provider server error (5xx, or an overload event mid-stream). Transient."""

    RETRYABLE = True


class RateLimitError(ProviderAPIError):
    """
    Rate limit exceeded (429).

    Attributes:
        retry_after: Seconds to wait, from the Retry-After header
    """

    RETRYABLE = True

    def __init__(
        self,
        message: str,
        provider_id: str,
        status_code: int = 429,
        response_body: str = "",
        model: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider_id, status_code, response_body, model)
        self.retry_after = retry_after
        if retry_after is not None:
            self.metadata["retry_after"] = retry_after


class ProviderConnectionError(LLMProviderError):
    """Unable to reach the provider."""

    def __init__(
        self,
        message: str,
        provider_id: str,
        model: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            provider_id=provider_id,
            model=model,
            error_type="connection_error",
            retryable=True,
            metadata={"original_error": str(original_error)} if original_error else {},
        )
        self.original_error = original_error


class ProviderTimeoutError(LLMProviderError):
    """Request exceeded its per-attempt timeout."""

    def __init__(
        self,
        message: str,
        provider_id: str,
        timeout_seconds: Optional[float] = None,
        model: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            provider_id=provider_id,
            model=model,
            error_type="timeout",
            retryable=True,
            metadata={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class ProviderConfigurationError(LLMProviderError):
    """
    Provider cannot be used as configured.

    Raised for unknown provider ids, missing credentials and missing
    endpoints. Never retried and never counted against provider health.
    """

    def __init__(
        self,
        message: str,
        provider_id: str,
        config_field: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            provider_id=provider_id,
            error_type="configuration_error",
            retryable=False,
            metadata={"config_field": config_field} if config_field else {},
        )
        self.config_field = config_field


class ImageNotSupportedError(LLMProviderError):
    """Adapter was asked to send image segments to a text-only backend."""

    def __init__(self, provider_id: str, model: Optional[str] = None):
        super().__init__(
            message=f"Provider '{provider_id}' does not accept image input",
            provider_id=provider_id,
            model=model,
            error_type="image_not_supported",
            retryable=False,
        )


class StreamingError(LLMProviderError):
    """
    A stream failed after delivering part of its output.

    The delivered text is not retracted and no other provider is tried.

    Attributes:
        chunks_received: Number of chunks delivered before the failure
        partial_content: Concatenation of the delivered chunks
    """

    def __init__(
        self,
        message: str,
        provider_id: str,
        model: Optional[str] = None,
        chunks_received: int = 0,
        partial_content: str = "",
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message=message,
            provider_id=provider_id,
            model=model,
            error_type="streaming_error",
            retryable=False,
            metadata={
                "chunks_received": chunks_received,
                "original_error": str(original_error) if original_error else None,
            },
        )
        self.chunks_received = chunks_received
        self.partial_content = partial_content
        self.original_error = original_error


@dataclass
class ProviderAttempt:
    """What happened to one candidate during a chat dispatch."""

    provider_id: str
    outcome: str  # skipped | failed | succeeded
    reason: str
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AllProvidersFailedError(Exception):
    """
    Every candidate provider was skipped or failed.

    Attributes:
        attempts: One entry per candidate, in the order they were considered
        last_error: The last underlying provider error, if any was raised
    """

    def __init__(
        self,
        attempts: List[ProviderAttempt],
        last_error: Optional[BaseException] = None,
    ):
        self.attempts = attempts
        self.last_error = last_error
        if attempts:
            summary = "; ".join(
                f"{a.provider_id}: {a.outcome} ({a.reason})" for a in attempts
            )
        else:
            summary = "no providers configured"
        message = f"All providers failed: {summary}"
        if last_error is not None:
            message += f". Last error: {last_error}"
        super().__init__(message)

    @property
    def provider_ids(self) -> List[str]:
        return [a.provider_id for a in self.attempts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "error_type": "all_providers_failed",
            "attempts": [a.to_dict() for a in self.attempts],
            "last_error": str(self.last_error) if self.last_error else None,
        }


class ChatCancelledError(Exception):
    """The caller cancelled the chat before a result was produced."""


def _parse_retry_after(headers: Optional[Mapping[str, str]]) -> Optional[float]:
    if not headers:
        return None
    value = headers.get("Retry-After") or headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # HTTP-date form is not supported
        return None


def error_from_status(
    status_code: int,
    response_body: str,
    provider_id: str,
    model: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> ProviderAPIError:
    """
    Map an HTTP error status to the matching exception.

    401/403 authentication, 402 credits, 404 model, 429 rate limit,
    5xx server, any other status is an invalid request.
    """
    message = f"HTTP {status_code}: {response_body[:200]}"

    if status_code in (401, 403):
        return AuthenticationError(message, provider_id, status_code, response_body, model)
    if status_code == 402:
        return InsufficientCreditsError(
            message, provider_id, status_code, response_body, model
        )
    if status_code == 404:
        return ModelNotFoundError(message, provider_id, status_code, response_body, model)
    if status_code == 429:
        return RateLimitError(
            message,
            provider_id,
            status_code,
            response_body,
            model,
            retry_after=_parse_retry_after(headers),
        )
    if 500 <= status_code < 600:
        return ServerError(message, provider_id, status_code, response_body, model)
    return InvalidRequestError(message, provider_id, status_code, response_body, model)


def parse_provider_error(
    error: BaseException,
    provider_id: str,
    model: Optional[str] = None,
) -> LLMProviderError:
    """
    Convert an arbitrary exception into a structured provider error.

    Timeouts and network failures become retryable errors; anything else
    that is not already an ``LLMProviderError`` is treated as permanent.
    """
    if isinstance(error, LLMProviderError):
        return error

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ProviderTimeoutError(
            message=str(error) or "Request timed out",
            provider_id=provider_id,
            model=model,
        )

    if isinstance(error, aiohttp.ClientResponseError):
        return error_from_status(
            error.status, error.message or "", provider_id, model, error.headers
        )

    if isinstance(error, (aiohttp.ClientError, OSError)):
        return ProviderConnectionError(
            message=str(error) or type(error).__name__,
            provider_id=provider_id,
            model=model,
            original_error=error,
        )

    error_str = str(error)
    error_str_lower = error_str.lower()

    if "timeout" in error_str_lower or "timed out" in error_str_lower:
        return ProviderTimeoutError(message=error_str, provider_id=provider_id, model=model)

    if "network" in error_str_lower or "connection" in error_str_lower:
        return ProviderConnectionError(
            message=error_str,
            provider_id=provider_id,
            model=model,
            original_error=error,
        )

    return LLMProviderError(
        message=error_str or type(error).__name__,
        provider_id=provider_id,
        model=model,
        error_type="unknown",
        retryable=False,
        metadata={"original_exception": type(error).__name__},
    )
