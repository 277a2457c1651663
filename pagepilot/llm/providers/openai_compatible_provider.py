"""
Adapter for backends speaking the OpenAI chat-completions protocol.

One class serves OpenAI, DeepSeek, Ollama, OpenRouter, Perplexity and Groq;
they differ only in base URL, default model, key requirement and image
policy.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ...utils.logging import track
from ..base_provider import BaseHTTPProvider, ImagePolicy, emit_chunk
from ..types import ChatResponse, ChunkCallback, LLMMessage, TokenUsage

logger = logging.getLogger(__name__)


def parse_openai_usage(usage: Optional[Dict[str, Any]]) -> Optional[TokenUsage]:
    if not usage:
        return None
    prompt_tokens = int(usage.get("prompt_tokens") or 0)
    completion_tokens = int(usage.get("completion_tokens") or 0)
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=int(usage.get("total_tokens") or prompt_tokens + completion_tokens),
    )


class OpenAICompatibleProvider(BaseHTTPProvider):
    """
    Chat-completions adapter with bearer-token auth and ``data:`` SSE.

    A custom endpoint passed to ``generate``/``stream`` replaces the base URL.
    """

    def __init__(
        self,
        provider_id: str,
        name: str,
        base_url: str,
        default_model: str,
        *,
        requires_api_key: bool = True,
        image_policy: ImagePolicy = ImagePolicy.SUPPORTED,
        extra_headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 300,
    ):
        super().__init__(
            provider_id,
            name,
            default_model,
            requires_api_key=requires_api_key,
            image_policy=image_policy,
            timeout_seconds=timeout_seconds,
        )
        self.base_url = base_url.rstrip("/")
        self.extra_headers = extra_headers or {}

    def _build_headers(self, api_key: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", **self.extra_headers}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _build_url(self, endpoint: Optional[str]) -> str:
        return f"{(endpoint or self.base_url).rstrip('/')}/chat/completions"

    def _build_params(self, endpoint: Optional[str]) -> Optional[Dict[str, str]]:
        return None

    def _build_payload(
        self, messages: List[LLMMessage], model: str, stream: bool
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": self._convert_messages(messages),
        }
        if stream:
            payload["stream"] = True
        return payload

    def _convert_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in messages]

    @track(
        operation="openai_compatible_generate",
        include_args=["model"],
        track_performance=True,
        frequency="low_frequency",
    )
    async def generate(
        self,
        messages: Sequence[LLMMessage],
        api_key: str,
        *,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> ChatResponse:
        model = model or self.default_model
        prepared = self.prepare_messages(messages, model)

        data = await self._post_json(
            self._build_url(endpoint),
            self._build_payload(prepared, model, stream=False),
            self._build_headers(api_key),
            model,
            params=self._build_params(endpoint),
        )

        choices = data.get("choices") or []
        message = choices[0].get("message", {}) if choices else {}
        return ChatResponse(
            content=message.get("content") or "",
            usage=parse_openai_usage(data.get("usage")),
            provider_id=self.provider_id,
            model=data.get("model") or model,
        )

    async def stream(
        self,
        messages: Sequence[LLMMessage],
        api_key: str,
        on_chunk: ChunkCallback,
        *,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> Optional[TokenUsage]:
        model = model or self.default_model
        prepared = self.prepare_messages(messages, model)
        usage: Optional[TokenUsage] = None

        async for data in self._iter_sse(
            self._build_url(endpoint),
            self._build_payload(prepared, model, stream=True),
            self._build_headers(api_key),
            model,
            params=self._build_params(endpoint),
        ):
            for choice in data.get("choices") or []:
                content = (choice.get("delta") or {}).get("content")
                if content:
                    await emit_chunk(on_chunk, content)

            usage = parse_openai_usage(data.get("usage")) or usage

        return usage
