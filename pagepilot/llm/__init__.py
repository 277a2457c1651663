"""
Multi-provider LLM orchestration.

Adapters for each backend behind one contract, with ordered fallback,
per-provider circuit breaking, retry with backoff, and cost / quota
accounting.
"""

from .base_provider import BaseHTTPProvider, BaseLLMProvider, ImagePolicy
from .cost_tracker import (
    AlertLevel,
    CostEstimate,
    CostSummary,
    CostTracker,
    ProviderUsage,
    QuotaAlert,
)
from .exceptions import (
    AllProvidersFailedError,
    AuthenticationError,
    ChatCancelledError,
    ImageNotSupportedError,
    InsufficientCreditsError,
    InvalidRequestError,
    LLMProviderError,
    ModelNotFoundError,
    ProviderAPIError,
    ProviderAttempt,
    ProviderConfigurationError,
    ProviderConnectionError,
    ProviderTimeoutError,
    RateLimitError,
    ServerError,
    StreamingError,
    parse_provider_error,
)
from .llm_service import LLMService
from .pricing import DEFAULT_PRICING, ProviderPricing
from .provider_health_monitor import (
    CircuitState,
    HealthCheckResult,
    HealthStatus,
    ProviderHealth,
    ProviderHealthMonitor,
)
from .provider_registry import ProviderRegistry
from .provider_router import ProviderRouter
from .retry import RetryPolicy
from .types import (
    ChatRequest,
    ChatResponse,
    ImageSegment,
    LLMMessage,
    Role,
    TextSegment,
    TokenUsage,
)

__all__ = [
    # Message model
    "ChatRequest",
    "ChatResponse",
    "ImageSegment",
    "LLMMessage",
    "Role",
    "TextSegment",
    "TokenUsage",
    # Adapters
    "BaseHTTPProvider",
    "BaseLLMProvider",
    "ImagePolicy",
    # Exceptions
    "AllProvidersFailedError",
    "AuthenticationError",
    "ChatCancelledError",
    "ImageNotSupportedError",
    "InsufficientCreditsError",
    "InvalidRequestError",
    "LLMProviderError",
    "ModelNotFoundError",
    "ProviderAPIError",
    "ProviderAttempt",
    "ProviderConfigurationError",
    "ProviderConnectionError",
    "ProviderTimeoutError",
    "RateLimitError",
    "ServerError",
    "StreamingError",
    "parse_provider_error",
    # Services
    "LLMService",
    "ProviderRegistry",
    "ProviderRouter",
    "RetryPolicy",
    "ProviderHealthMonitor",
    "ProviderHealth",
    "HealthStatus",
    "CircuitState",
    "HealthCheckResult",
    "CostTracker",
    "CostSummary",
    "CostEstimate",
    "ProviderUsage",
    "QuotaAlert",
    "AlertLevel",
    "ProviderPricing",
    "DEFAULT_PRICING",
]
