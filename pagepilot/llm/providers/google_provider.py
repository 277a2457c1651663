"""
Google Gemini provider implementation.

Uses the v1beta ``generateContent`` and ``streamGenerateContent?alt=sse``
endpoints. Gemini requires the conversation to open with a user turn and
only accepts inline (base64) image data, so remote image URLs are dropped.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ...utils.logging import log_event, track
from ..base_provider import (
    BaseHTTPProvider,
    ImagePolicy,
    emit_chunk,
    split_system_prompt,
)
from ..constants import ProviderDefaults, ProviderId
from ..exceptions import InvalidRequestError, ProviderConfigurationError
from ..types import (
    ChatResponse,
    ChunkCallback,
    ImageSegment,
    LLMMessage,
    Role,
    TokenUsage,
)

logger = logging.getLogger(__name__)


def parse_gemini_usage(metadata: Optional[Dict[str, Any]]) -> Optional[TokenUsage]:
    if not metadata:
        return None
    prompt_tokens = int(metadata.get("promptTokenCount", 0))
    completion_tokens = int(metadata.get("candidatesTokenCount", 0))
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=int(
            metadata.get("totalTokenCount", prompt_tokens + completion_tokens)
        ),
    )


def _candidate_text(data: Dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


class GeminiProvider(BaseHTTPProvider):
    def __init__(
        self,
        provider_id: str = ProviderId.GEMINI.value,
        name: str = "Google Gemini",
        default_model: str = ProviderDefaults.GEMINI_MODEL,
        *,
        base_url: str = ProviderDefaults.GEMINI_BASE_URL,
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

    def _build_headers(self, api_key: str) -> Dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": api_key}

    def _build_url(self, model: str, method: str, endpoint: Optional[str]) -> str:
        return f"{(endpoint or self.base_url).rstrip('/')}/models/{model}:{method}"

    def _convert_parts(self, message: LLMMessage) -> List[Dict[str, Any]]:
        parts: List[Dict[str, Any]] = []
        dropped = 0
        for segment in message.segments:
            if isinstance(segment, ImageSegment):
                inline = segment.as_inline_data()
                if inline is None:
                    dropped += 1
                    continue
                mime_type, data = inline
                parts.append({"inline_data": {"mime_type": mime_type, "data": data}})
            elif segment.text:
                parts.append({"text": segment.text})

        if dropped:
            log_event(
                "image_segments_stripped",
                {
                    "provider_id": self.provider_id,
                    "images_dropped": dropped,
                    "reason": "remote image URLs are not supported",
                },
                level=logging.WARNING,
            )
        return parts

    def _convert_messages(self, messages: List[LLMMessage]) -> Dict[str, Any]:
        """
        Build the ``contents`` / ``systemInstruction`` part of the payload.

        History is trimmed to start at the first user message and
        consecutive turns of the same role are merged. The trim is applied
        again after conversion because a user turn holding only remote
        images converts to nothing.
        """
        system_prompt, history = split_system_prompt(messages)

        contents: List[Dict[str, Any]] = []
        for message in history:
            role = "model" if message.role == Role.ASSISTANT else "user"
            parts = self._convert_parts(message)
            if not parts:
                continue
            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].extend(parts)
            else:
                contents.append({"role": role, "parts": parts})

        leading = 0
        while leading < len(contents) and contents[leading]["role"] == "model":
            leading += 1
        if leading:
            log_event(
                "history_leading_turns_dropped",
                {"provider_id": self.provider_id, "dropped": leading},
                level=logging.DEBUG,
            )
            contents = contents[leading:]

        if not contents:
            raise ProviderConfigurationError(
                "Conversation has no user message",
                provider_id=self.provider_id,
                config_field="messages",
            )

        body: Dict[str, Any] = {"contents": contents}
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return body

    def _check_blocked(self, data: Dict[str, Any], model: str) -> None:
        feedback = data.get("promptFeedback") or {}
        if feedback.get("blockReason") and not data.get("candidates"):
            raise InvalidRequestError(
                f"Prompt blocked: {feedback['blockReason']}",
                self.provider_id,
                400,
                str(feedback),
                model,
            )

    @track(
        operation="gemini_generate",
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
            self._build_url(model, "generateContent", endpoint),
            self._convert_messages(prepared),
            self._build_headers(api_key),
            model,
        )
        self._check_blocked(data, model)

        candidates = data.get("candidates") or []
        return ChatResponse(
            content=_candidate_text(data),
            usage=parse_gemini_usage(data.get("usageMetadata")),
            provider_id=self.provider_id,
            model=model,
            metadata={
                "finish_reason": candidates[0].get("finishReason") if candidates else None
            },
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
            self._build_url(model, "streamGenerateContent", endpoint),
            self._convert_messages(prepared),
            self._build_headers(api_key),
            model,
            params={"alt": "sse"},
        ):
            self._check_blocked(data, model)
            text = _candidate_text(data)
            if text:
                await emit_chunk(on_chunk, text)
            usage = parse_gemini_usage(data.get("usageMetadata")) or usage

        return usage
