from enum import Enum
from typing import Final, Tuple


class ProviderId(str, Enum):
    OLLAMA = "ollama"
    GEMINI = "gemini"
    GROQ = "groq"
    OPENROUTER = "openrouter"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    PERPLEXITY = "perplexity"
    AZURE = "azure"


class ProviderDefaults:
    OLLAMA_BASE_URL: Final[str] = "http://localhost:11434/v1"
    OLLAMA_MODEL: Final[str] = "llava"

    OPENAI_BASE_URL: Final[str] = "https://api.openai.com/v1"
    OPENAI_MODEL: Final[str] = "gpt-4o"

    DEEPSEEK_BASE_URL: Final[str] = "https://api.deepseek.com/v1"
    DEEPSEEK_MODEL: Final[str] = "deepseek-chat"

    OPENROUTER_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: Final[str] = "google/gemini-2.0-flash-exp:free"

    PERPLEXITY_BASE_URL: Final[str] = "https://api.perplexity.ai"
    PERPLEXITY_MODEL: Final[str] = "sonar-reasoning-pro"

    GROQ_BASE_URL: Final[str] = "https://api.groq.com/openai/v1"
    GROQ_MODEL: Final[str] = "llama-3.1-8b-instant"

    ANTHROPIC_BASE_URL: Final[str] = "https://api.anthropic.com/v1"
    ANTHROPIC_MODEL: Final[str] = "claude-3-5-sonnet-20240620"
    ANTHROPIC_VERSION: Final[str] = "2023-06-01"
    ANTHROPIC_MAX_TOKENS: Final[int] = 4096

    GEMINI_BASE_URL: Final[str] = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MODEL: Final[str] = "gemini-1.5-flash"

    AZURE_API_VERSION: Final[str] = "2024-02-15-preview"

    CONNECT_TIMEOUT: Final[int] = 10


class HealthMonitorDefaults:
    FAILURE_THRESHOLD: Final[int] = 3
    RESET_TIMEOUT_SECONDS: Final[float] = 60.0
    HALF_OPEN_REQUESTS: Final[int] = 1
    DEGRADED_THRESHOLD: Final[float] = 0.80
    UNHEALTHY_THRESHOLD: Final[float] = 0.50


class RetryDefaults:
    MAX_RETRIES: Final[int] = 3
    BASE_DELAY_SECONDS: Final[float] = 1.0
    MAX_DELAY_SECONDS: Final[float] = 10.0
    BACKOFF_FACTOR: Final[float] = 2.0
    ATTEMPT_TIMEOUT_SECONDS: Final[float] = 60.0
    STREAM_TIMEOUT_SECONDS: Final[float] = 300.0


class QuotaDefaults:
    WARNING_THRESHOLD: Final[float] = 0.75
    CRITICAL_THRESHOLD: Final[float] = 0.90
    ALERT_SUPPRESSION_SECONDS: Final[float] = 3600.0
    RECENT_ALERT_HOURS: Final[int] = 24
    CURRENCY: Final[str] = "USD"


class TokenEstimation:
    CHARS_PER_TOKEN: Final[int] = 4


class RedisKeys:
    CREDENTIAL_PREFIX: Final[str] = "pagepilot:credential:"
    HEALTH_SNAPSHOT: Final[str] = "pagepilot:snapshot:health"
    USAGE_SNAPSHOT: Final[str] = "pagepilot:snapshot:usage"


# Local and free providers come before paid ones
DEFAULT_PROVIDER_PRIORITY: Final[Tuple[str, ...]] = tuple(p.value for p in ProviderId)

KEYLESS_PROVIDERS: Final[Tuple[str, ...]] = (ProviderId.OLLAMA.value,)
