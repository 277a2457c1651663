"""
Static pricing table.

Rates are per 1K tokens and only approximate published list prices; every
figure derived from them is an estimate. Free tiers carry a request quota
that resets on ``quota_reset_day`` of each month.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .constants import QuotaDefaults


@dataclass(frozen=True)
class ProviderPricing:
    provider: str
    model: str
    prompt_token_cost: float
    completion_token_cost: float
    currency: str = QuotaDefaults.CURRENCY
    quota_limit: Optional[int] = None
    quota_reset_day: Optional[int] = None

    def __post_init__(self):
        if self.prompt_token_cost < 0 or self.completion_token_cost < 0:
            raise ValueError("Token costs cannot be negative")
        if self.quota_limit is not None and self.quota_limit <= 0:
            raise ValueError("quota_limit must be positive")
        if self.quota_reset_day is not None and not 1 <= self.quota_reset_day <= 31:
            raise ValueError("quota_reset_day must be between 1 and 31")

    @property
    def key(self) -> str:
        return pricing_key(self.provider, self.model)

    def cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (prompt_tokens / 1000) * self.prompt_token_cost + (
            completion_tokens / 1000
        ) * self.completion_token_cost

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def pricing_key(provider: str, model: str) -> str:
    return f"{provider}-{model}"


DEFAULT_PRICING = (
    ProviderPricing("openai", "gpt-4o", 0.0025, 0.01),
    ProviderPricing("openai", "gpt-4o-mini", 0.00015, 0.0006),
    ProviderPricing("openai", "gpt-4", 0.03, 0.06),
    ProviderPricing("openai", "gpt-3.5-turbo", 0.0015, 0.002),
    ProviderPricing("azure", "gpt-4o", 0.0025, 0.01),
    ProviderPricing("anthropic", "claude-3-5-sonnet-20240620", 0.003, 0.015),
    ProviderPricing("anthropic", "claude-3-opus", 0.015, 0.075),
    ProviderPricing("anthropic", "claude-3-sonnet", 0.003, 0.015),
    ProviderPricing("deepseek", "deepseek-chat", 0.00027, 0.0011),
    ProviderPricing("perplexity", "sonar-reasoning-pro", 0.002, 0.008),
    ProviderPricing(
        "gemini", "gemini-1.5-flash", 0, 0, quota_limit=45000, quota_reset_day=1
    ),
    ProviderPricing("gemini", "gemini-pro", 0, 0, quota_limit=60000, quota_reset_day=1),
    ProviderPricing(
        "groq", "llama-3.1-8b-instant", 0, 0, quota_limit=14400, quota_reset_day=1
    ),
    ProviderPricing("groq", "mixtral-8x7b", 0, 0, quota_limit=14400, quota_reset_day=1),
    ProviderPricing("openrouter", "google/gemini-2.0-flash-exp:free", 0, 0),
    ProviderPricing("ollama", "llava", 0, 0),
)
