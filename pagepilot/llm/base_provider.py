"""
Base provider abstraction for LLM backends.

Every adapter implements ``generate`` and ``stream`` against one backend and
translates the common ``LLMMessage`` shape into that backend's wire format.
Adapters never retry or fall back; they raise and let ``LLMService`` decide.
"""

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import aiohttp

from ..utils.logging import log_event
from .constants import ProviderDefaults
from .exceptions import (
    ImageNotSupportedError,
    LLMProviderError,
    error_from_status,
    parse_provider_error,
)
from .types import ChatResponse, ChunkCallback, LLMMessage, Role, TokenUsage

logger = logging.getLogger(__name__)


class ImagePolicy(str, Enum):
    """What an adapter does with image segments."""

    SUPPORTED = "supported"
    STRIP = "strip"  # drop images, send text, log image_segments_stripped
    REJECT = "reject"  # raise ImageNotSupportedError


class BaseLLMProvider(ABC):
    """
    Abstract base class for all LLM adapters.

    Attributes:
        provider_id: Registry key, e.g. "openai"
        name: Human-readable name
        default_model: Model used when the caller does not pick one
        requires_api_key: False for local backends such as Ollama
        image_policy: How image segments are handled
    """

    def __init__(
        self,
        provider_id: str,
        name: str,
        default_model: str,
        *,
        requires_api_key: bool = True,
        image_policy: ImagePolicy = ImagePolicy.SUPPORTED,
    ):
        self.provider_id = provider_id
        self.name = name
        self.default_model = default_model
        self.requires_api_key = requires_api_key
        self.image_policy = image_policy

    @property
    def supports_vision(self) -> bool:
        return self.image_policy == ImagePolicy.SUPPORTED

    def prepare_messages(
        self, messages: Sequence[LLMMessage], model: Optional[str] = None
    ) -> List[LLMMessage]:
        """Apply this adapter's image policy to the outgoing messages."""
        messages = list(messages)
        if self.image_policy == ImagePolicy.SUPPORTED:
            return messages

        image_count = sum(len(m.images()) for m in messages)
        if image_count == 0:
            return messages

        if self.image_policy == ImagePolicy.REJECT:
            raise ImageNotSupportedError(self.provider_id, model)

        log_event(
            "image_segments_stripped",
            {
                "provider_id": self.provider_id,
                "model": model,
                "images_dropped": image_count,
            },
            level=logging.WARNING,
        )
        return [m.without_images() for m in messages]

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[LLMMessage],
        api_key: str,
        *,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> ChatResponse:
        """
        Single blocking completion.

        Raises:
            LLMProviderError: On any backend or transport failure
        """

    @abstractmethod
    async def stream(
        self,
        messages: Sequence[LLMMessage],
        api_key: str,
        on_chunk: ChunkCallback,
        *,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> Optional[TokenUsage]:
        """
        Streaming completion.

        Calls ``on_chunk`` for every text fragment in arrival order and
        returns once the backend signals completion. Returns the usage the
        backend reported, or None when it reported none.
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.provider_id}, model={self.default_model})"


async def emit_chunk(on_chunk: ChunkCallback, text: str) -> None:
    """Deliver one fragment to a sync or async chunk callback."""
    result = on_chunk(text)
    if inspect.isawaitable(result):
        await result


class BaseHTTPProvider(BaseLLMProvider):
    """
    Adapter base for backends reached over HTTP.

    Each call opens its own ``aiohttp.ClientSession``; no connections are
    pooled across requests.
    """

    def __init__(self, *args: Any, timeout_seconds: float = 300, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.timeout_seconds = timeout_seconds

    def _create_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self.timeout_seconds,
            connect=ProviderDefaults.CONNECT_TIMEOUT,
        )

    def _create_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=self._create_timeout())

    async def _raise_for_status(
        self, response: aiohttp.ClientResponse, model: str
    ) -> None:
        if response.status < 400:
            return
        body = await response.text()
        log_event(
            "provider_http_error",
            {
                "provider_id": self.provider_id,
                "status": response.status,
                "error": body[:500],
                "model": model,
            },
            level=logging.WARNING,
        )
        raise error_from_status(
            response.status, body, self.provider_id, model, response.headers
        )

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        model: str,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON reply."""
        try:
            async with self._create_session() as session:
                async with session.post(
                    url, json=payload, headers=headers, params=params
                ) as response:
                    await self._raise_for_status(response, model)
                    return await response.json(content_type=None)
        except LLMProviderError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            raise parse_provider_error(e, self.provider_id, model) from e

    async def _iter_sse(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        model: str,
        params: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        POST a streaming request and yield each decoded ``data:`` event.

        Stops at ``[DONE]`` or when the body ends. Comment lines and
        ``event:`` lines are ignored; undecodable payloads are logged and
        skipped.
        """
        try:
            async with self._create_session() as session:
                async with session.post(
                    url, json=payload, headers=headers, params=params
                ) as response:
                    await self._raise_for_status(response, model)

                    async for line in response.content:
                        line_str = line.decode("utf-8").strip()
                        if not line_str or not line_str.startswith("data:"):
                            continue

                        data_str = line_str[5:].strip()
                        if data_str == "[DONE]":
                            return

                        try:
                            data = json.loads(data_str)
                        except json.JSONDecodeError as e:
                            log_event(
                                "provider_stream_parse_error",
                                {
                                    "provider_id": self.provider_id,
                                    "error": str(e),
                                    "data": data_str[:100],
                                },
                                level=logging.WARNING,
                            )
                            continue

                        if isinstance(data, dict) and "error" in data:
                            raise self._stream_error(data["error"], model)
                        yield data
        except LLMProviderError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise parse_provider_error(e, self.provider_id, model) from e

    def _stream_error(self, error: Any, model: str) -> LLMProviderError:
        """Error object sent inside an otherwise successful stream."""
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message") or json.dumps(error)
            if isinstance(code, int) and code >= 400:
                return error_from_status(code, message, self.provider_id, model)
        else:
            message = str(error)
        return LLMProviderError(
            message=message,
            provider_id=self.provider_id,
            model=model,
            error_type="stream_error_event",
        )


def split_system_prompt(
    messages: Sequence[LLMMessage],
) -> Tuple[str, List[LLMMessage]]:
    """
    Separate system text from the conversation for backends that take it
    as a dedicated field and require history to open with a user turn.

    Returns the joined system text and the non-system messages starting at
    the first user message. Assistant turns before that are dropped.
    """
    system_parts = [m.text() for m in messages if m.role == Role.SYSTEM and m.text()]
    history = [m for m in messages if m.role != Role.SYSTEM]

    first_user = next(
        (i for i, m in enumerate(history) if m.role == Role.USER), len(history)
    )
    if first_user:
        log_event(
            "history_leading_turns_dropped",
            {"dropped": first_user},
            level=logging.DEBUG,
        )
    return "\n\n".join(system_parts), history[first_user:]
