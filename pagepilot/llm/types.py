"""
Provider-neutral message and response types.

A message's content is either plain text or an ordered tuple of segments,
each a ``TextSegment`` or an ``ImageSegment``. Adapters match on the
segment type to build their wire format.
"""

import asyncio
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from .constants import TokenEstimation


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class ImageSegment:
    """
    Reference to an image, either a remote URL or a ``data:`` URL.

    Attributes:
        url: http(s) URL or ``data:<mime>;base64,<payload>``
        detail: Optional resolution hint understood by OpenAI-style APIs
    """

    url: str
    detail: Optional[str] = None

    def as_inline_data(self) -> Optional[Tuple[str, str]]:
        """
        Split a base64 data URL into ``(mime_type, payload)``.

        Returns None for anything that is not a base64 data URL.
        """
        if not self.url.startswith("data:"):
            return None
        header, sep, payload = self.url[5:].partition(",")
        if not sep or not header.endswith(";base64"):
            return None
        mime_type = header[: -len(";base64")] or "application/octet-stream"
        return mime_type, payload


Segment = Union[TextSegment, ImageSegment]
MessageContent = Union[str, Tuple[Segment, ...]]


@dataclass(frozen=True)
class LLMMessage:
    """
    Unified, immutable message format across all providers.

    Attributes:
        role: Message role
        content: Text, or an ordered tuple of text and image segments
    """

    role: Role
    content: MessageContent

    def __post_init__(self):
        if not isinstance(self.role, Role):
            try:
                object.__setattr__(self, "role", Role(self.role))
            except ValueError:
                raise ValueError(
                    f"Invalid role '{self.role}'. Must be one of: "
                    f"{[r.value for r in Role]}"
                ) from None

        if isinstance(self.content, str):
            return

        segments = tuple(self.content)
        for segment in segments:
            if not isinstance(segment, (TextSegment, ImageSegment)):
                raise TypeError(
                    f"Unsupported content segment: {type(segment).__name__}"
                )
        object.__setattr__(self, "content", segments)

    @classmethod
    def system(cls, content: Union[str, Sequence[Segment]]) -> "LLMMessage":
        return cls(Role.SYSTEM, content)  # type: ignore[arg-type]

    @classmethod
    def user(cls, content: Union[str, Sequence[Segment]]) -> "LLMMessage":
        return cls(Role.USER, content)  # type: ignore[arg-type]

    @classmethod
    def assistant(cls, content: Union[str, Sequence[Segment]]) -> "LLMMessage":
        return cls(Role.ASSISTANT, content)  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LLMMessage":
        """
        Build a message from the OpenAI-style dict shape.

        ``content`` may be a string or a list of ``{"type": "text", "text": ...}``
        and ``{"type": "image_url", "image_url": {"url": ..., "detail": ...}}``
        parts.
        """
        content = data.get("content", "")
        if isinstance(content, str):
            return cls(data["role"], content)

        segments: List[Segment] = []
        for part in content:
            part_type = part.get("type")
            if part_type == "text":
                segments.append(TextSegment(part.get("text", "")))
            elif part_type == "image_url":
                image = part.get("image_url") or {}
                if isinstance(image, str):
                    segments.append(ImageSegment(image))
                else:
                    segments.append(ImageSegment(image["url"], image.get("detail")))
            else:
                raise ValueError(f"Unsupported content part type: {part_type}")
        return cls(data["role"], tuple(segments))

    @property
    def segments(self) -> Tuple[Segment, ...]:
        if isinstance(self.content, str):
            return (TextSegment(self.content),)
        return self.content

    def text(self) -> str:
        """All text of the message, with segments joined by newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            segment.text for segment in self.content if isinstance(segment, TextSegment)
        )

    def images(self) -> List[ImageSegment]:
        if isinstance(self.content, str):
            return []
        return [s for s in self.content if isinstance(s, ImageSegment)]

    def has_images(self) -> bool:
        return bool(self.images())

    def without_images(self) -> "LLMMessage":
        if not self.has_images():
            return self
        return LLMMessage(self.role, self.text())

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role.value, "content": self.content}

        parts: List[Dict[str, Any]] = []
        for segment in self.content:
            if isinstance(segment, TextSegment):
                parts.append({"type": "text", "text": segment.text})
            else:
                image: Dict[str, Any] = {"url": segment.url}
                if segment.detail:
                    image["detail"] = segment.detail
                parts.append({"type": "image_url", "image_url": image})
        return {"role": self.role.value, "content": parts}


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / TokenEstimation.CHARS_PER_TOKEN)


@dataclass(frozen=True)
class TokenUsage:
    """
    Token counts for one completed request.

    ``estimated`` is True when the counts come from the character-length
    heuristic rather than from the provider.
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated: bool = False

    @classmethod
    def of(cls, prompt_tokens: int, completion_tokens: int) -> "TokenUsage":
        return cls(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens)

    @classmethod
    def estimate(
        cls, messages: Sequence[LLMMessage], completion_text: str = ""
    ) -> "TokenUsage":
        prompt_tokens = sum(estimate_tokens(m.text()) for m in messages)
        completion_tokens = estimate_tokens(completion_text)
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "estimated": self.estimated,
        }


ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]


@dataclass
class ChatRequest:
    """
    One chat call.

    Attributes:
        messages: Conversation so far, oldest first
        provider_id: Provider to try first, if any
        streaming: Deliver text through ``on_chunk`` as it arrives
        on_chunk: Receives each text fragment in arrival order (sync or async)
        model: Model override for the first provider tried
        cancel_event: Set by the caller to abandon the call
    """

    messages: Sequence[LLMMessage]
    provider_id: Optional[str] = None
    streaming: bool = False
    on_chunk: Optional[ChunkCallback] = None
    model: Optional[str] = None
    cancel_event: Optional[asyncio.Event] = None

    def __post_init__(self):
        self.messages = tuple(
            m if isinstance(m, LLMMessage) else LLMMessage.from_dict(m)
            for m in self.messages
        )
        if not self.messages:
            raise ValueError("ChatRequest needs at least one message")
        if self.streaming and self.on_chunk is None:
            raise ValueError("Streaming requests need an on_chunk callback")

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class ChatResponse:
    """
    Result of a chat call.

    For streaming calls ``content`` is empty; the text was delivered
    through the chunk callback.
    """

    content: str
    usage: Optional[TokenUsage] = None
    provider_id: Optional[str] = None
    model: Optional[str] = None
    attempts: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)
