"""
Anthropic provider implementation.

Talks to the Messages API. System messages are lifted into the ``system``
field and history is trimmed to open with a user turn, since the API rejects
anything else.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...utils.logging import track
from ..base_provider import (
    BaseHTTPProvider,
    ImagePolicy,
    emit_chunk,
    split_system_prompt,
)
from ..constants import ProviderDefaults, ProviderId
from ..exceptions import LLMProviderError, ProviderConfigurationError, ServerError
from ..types import (
    ChatResponse,
    ChunkCallback,
    ImageSegment,
    LLMMessage,
    Role,
    TokenUsage,
)

logger = logging.getLogger(__name__)

# Stream error types that mean "try again later"
_TRANSIENT_STREAM_ERRORS = {"overloaded_error": 529, "api_error": 500}


class AnthropicProvider(BaseHTTPProvider):
    """Claude models via ``POST /v1/messages`` with event-typed SSE."""

    def __init__(
        self,
        provider_id: str = ProviderId.ANTHROPIC.value,
        name: str = "Anthropic",
        default_model: str = ProviderDefaults.ANTHROPIC_MODEL,
        *,
        base_url: str = ProviderDefaults.ANTHROPIC_BASE_URL,
        max_tokens: int = ProviderDefaults.ANTHROPIC_MAX_TOKENS,
        image_policy: ImagePolicy = ImagePolicy.SUPPORTED,
        timeout_seconds: float = 300,
    ):
        super().__init__(
            provider_id,
            name,
            default_model,
            image_policy=image_policy,
            timeout_seconds=timeout_seconds,
        )
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens

    def _build_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": ProviderDefaults.ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _convert_content(self, message: LLMMessage) -> Any:
        if isinstance(message.content, str):
            return message.content

        blocks: List[Dict[str, Any]] = []
        for segment in message.content:
            if isinstance(segment, ImageSegment):
                inline = segment.as_inline_data()
                if inline is not None:
                    media_type, data = inline
                    source = {"type": "base64", "media_type": media_type, "data": data}
                else:
                    source = {"type": "url", "url": segment.url}
                blocks.append({"type": "image", "source": source})
            else:
                blocks.append({"type": "text", "text": segment.text})
        return blocks

    def _convert_messages(
        self, messages: List[LLMMessage]
    ) -> Tuple[str, List[Dict[str, Any]]]:
        """
        Convert to Anthropic format.

        Returns:
            (system prompt, message dicts) with consecutive same-role turns
            merged so roles alternate.
        """
        system_prompt, history = split_system_prompt(messages)
        if not history:
            raise ProviderConfigurationError(
                "Conversation has no user message",
                provider_id=self.provider_id,
                config_field="messages",
            )

        converted: List[Dict[str, Any]] = []
        for message in history:
            role = "assistant" if message.role == Role.ASSISTANT else "user"
            content = self._convert_content(message)
            if converted and converted[-1]["role"] == role:
                converted[-1]["content"] = _as_blocks(converted[-1]["content"]) + _as_blocks(
                    content
                )
            else:
                converted.append({"role": role, "content": content})
        return system_prompt, converted

    def _build_payload(
        self, messages: List[LLMMessage], model: str, stream: bool
    ) -> Dict[str, Any]:
        system_prompt, anthropic_messages = self._convert_messages(messages)
        payload: Dict[str, Any] = {
            "model": model,
            "messages": anthropic_messages,
            "max_tokens": self.max_tokens,
            "stream": stream,
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    def _url(self, endpoint: Optional[str]) -> str:
        return f"{(endpoint or self.base_url).rstrip('/')}/messages"

    @track(
        operation="anthropic_generate",
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
            self._url(endpoint),
            self._build_payload(prepared, model, stream=False),
            self._build_headers(api_key),
            model,
        )

        content = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return ChatResponse(
            content=content,
            usage=TokenUsage.of(
                int(usage.get("input_tokens", 0)), int(usage.get("output_tokens", 0))
            )
            if usage
            else None,
            provider_id=self.provider_id,
            model=data.get("model") or model,
            metadata={"stop_reason": data.get("stop_reason")},
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
        input_tokens: Optional[int] = None
        output_tokens: Optional[int] = None

        async for data in self._iter_sse(
            self._url(endpoint),
            self._build_payload(prepared, model, stream=True),
            self._build_headers(api_key),
            model,
        ):
            event_type = data.get("type")

            if event_type == "content_block_delta":
                delta = data.get("delta", {})
                if delta.get("type") == "text_delta" and delta.get("text"):
                    await emit_chunk(on_chunk, delta["text"])

            elif event_type == "message_start":
                usage = (data.get("message") or {}).get("usage") or {}
                input_tokens = usage.get("input_tokens", input_tokens)

            elif event_type == "message_delta":
                usage = data.get("usage") or {}
                output_tokens = usage.get("output_tokens", output_tokens)

        if input_tokens is None and output_tokens is None:
            return None
        return TokenUsage.of(int(input_tokens or 0), int(output_tokens or 0))

    def _stream_error(self, error: Any, model: str) -> LLMProviderError:
        if isinstance(error, dict) and error.get("type") in _TRANSIENT_STREAM_ERRORS:
            return ServerError(
                error.get("message", error["type"]),
                self.provider_id,
                _TRANSIENT_STREAM_ERRORS[error["type"]],
                model=model,
            )
        return super()._stream_error(error, model)


def _as_blocks(content: Any) -> List[Dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content)
