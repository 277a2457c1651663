"""
Retry policy for provider dispatch.

One canonical policy: ``max_retries`` total attempts per provider, with
``base_delay * factor ** attempt`` seconds between them, capped at
``max_delay``. A ``Retry-After`` hint from a 429 replaces the computed
delay but is still capped.
"""

from dataclasses import dataclass
from typing import Optional

from .constants import RetryDefaults
from .exceptions import LLMProviderError, RateLimitError


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = RetryDefaults.MAX_RETRIES
    base_delay: float = RetryDefaults.BASE_DELAY_SECONDS
    max_delay: float = RetryDefaults.MAX_DELAY_SECONDS
    factor: float = RetryDefaults.BACKOFF_FACTOR

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Delays cannot be negative")

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """
        Whether another attempt should follow a failed one.

        Args:
            error: The failure of the attempt that just ran
            attempt: Zero-based index of that attempt
        """
        if attempt + 1 >= self.max_retries:
            return False
        return isinstance(error, LLMProviderError) and error.retryable

    def delay_for(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Seconds to wait after the zero-based ``attempt`` failed."""
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return min(max(0.0, error.retry_after), self.max_delay)
        return min(self.base_delay * (self.factor**attempt), self.max_delay)
