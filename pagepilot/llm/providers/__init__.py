"""
LLM adapter implementations.

Each adapter implements the BaseLLMProvider contract for one backend.
"""

from typing import List, Optional

from ..base_provider import BaseLLMProvider, ImagePolicy
from ..constants import ProviderDefaults, ProviderId
from .anthropic_provider import AnthropicProvider
from .azure_provider import AzureOpenAIProvider
from .google_provider import GeminiProvider
from .openai_compatible_provider import OpenAICompatibleProvider


def create_default_providers(
    ollama_url: Optional[str] = None, timeout_seconds: float = 300
) -> List[BaseLLMProvider]:
    """
    Build one adapter per supported backend.

    Args:
        ollama_url: Root URL of the local Ollama server (``/v1`` is appended)
        timeout_seconds: Transport-level timeout for every adapter
    """
    ollama_base = (
        f"{ollama_url.rstrip('/')}/v1" if ollama_url else ProviderDefaults.OLLAMA_BASE_URL
    )

    return [
        OpenAICompatibleProvider(
            ProviderId.OLLAMA.value,
            "Ollama (Local)",
            ollama_base,
            ProviderDefaults.OLLAMA_MODEL,
            requires_api_key=False,
            timeout_seconds=timeout_seconds,
        ),
        GeminiProvider(timeout_seconds=timeout_seconds),
        OpenAICompatibleProvider(
            ProviderId.GROQ.value,
            "Groq",
            ProviderDefaults.GROQ_BASE_URL,
            ProviderDefaults.GROQ_MODEL,
            image_policy=ImagePolicy.STRIP,
            timeout_seconds=timeout_seconds,
        ),
        OpenAICompatibleProvider(
            ProviderId.OPENROUTER.value,
            "OpenRouter",
            ProviderDefaults.OPENROUTER_BASE_URL,
            ProviderDefaults.OPENROUTER_MODEL,
            timeout_seconds=timeout_seconds,
        ),
        OpenAICompatibleProvider(
            ProviderId.DEEPSEEK.value,
            "DeepSeek",
            ProviderDefaults.DEEPSEEK_BASE_URL,
            ProviderDefaults.DEEPSEEK_MODEL,
            image_policy=ImagePolicy.STRIP,
            timeout_seconds=timeout_seconds,
        ),
        OpenAICompatibleProvider(
            ProviderId.OPENAI.value,
            "OpenAI",
            ProviderDefaults.OPENAI_BASE_URL,
            ProviderDefaults.OPENAI_MODEL,
            timeout_seconds=timeout_seconds,
        ),
        AnthropicProvider(timeout_seconds=timeout_seconds),
        OpenAICompatibleProvider(
            ProviderId.PERPLEXITY.value,
            "Perplexity (Deep Research)",
            ProviderDefaults.PERPLEXITY_BASE_URL,
            ProviderDefaults.PERPLEXITY_MODEL,
            image_policy=ImagePolicy.STRIP,
            timeout_seconds=timeout_seconds,
        ),
        AzureOpenAIProvider(timeout_seconds=timeout_seconds),
    ]


__all__ = [
    "AnthropicProvider",
    "AzureOpenAIProvider",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "create_default_providers",
]
