import pytest

from pagepilot.llm.exceptions import ProviderConfigurationError, ServerError
from pagepilot.llm.providers import AnthropicProvider
from pagepilot.llm.types import ImageSegment, LLMMessage, TextSegment
from tests.mocks import FakeResponse, FakeSession, attach_session, sse


@pytest.fixture
def anthropic() -> AnthropicProvider:
    return AnthropicProvider()


def message_reply(text: str = "Hello!", usage=None) -> FakeResponse:
    return FakeResponse(
        body={
            "model": "claude-3-5-sonnet-20240620",
            "content": [{"type": "text", "text": text}],
            "stop_reason": "end_turn",
            "usage": usage or {"input_tokens": 12, "output_tokens": 4},
        }
    )


class TestGenerate:

    @pytest.mark.asyncio
    async def test_request_shape(self, anthropic):
        session = attach_session(anthropic, FakeSession(message_reply()))

        await anthropic.generate(
            [LLMMessage.system("Be brief."), LLMMessage.user("hi")], "sk-ant"
        )

        request = session.last_request
        assert request["url"] == "https://api.anthropic.com/v1/messages"
        assert request["headers"]["x-api-key"] == "sk-ant"
        assert request["headers"]["anthropic-version"] == "2023-06-01"
        assert request["json"]["system"] == "Be brief."
        assert request["json"]["messages"] == [{"role": "user", "content": "hi"}]
        assert request["json"]["max_tokens"] == 4096
        assert request["json"]["stream"] is False

    @pytest.mark.asyncio
    async def test_parses_reply(self, anthropic):
        attach_session(anthropic, FakeSession(message_reply("Bonjour")))

        response = await anthropic.generate([LLMMessage.user("hi")], "sk")

        assert response.content == "Bonjour"
        assert response.usage.prompt_tokens == 12
        assert response.usage.completion_tokens == 4
        assert response.metadata["stop_reason"] == "end_turn"

    @pytest.mark.asyncio
    async def test_leading_assistant_turns_are_dropped(self, anthropic):
        session = attach_session(anthropic, FakeSession(message_reply()))

        await anthropic.generate(
            [
                LLMMessage.assistant("How can I help?"),
                LLMMessage.user("Summarize this page"),
                LLMMessage.assistant("Sure"),
                LLMMessage.user("Shorter"),
            ],
            "sk",
        )

        roles = [m["role"] for m in session.last_request["json"]["messages"]]
        assert roles == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_consecutive_user_turns_are_merged(self, anthropic):
        session = attach_session(anthropic, FakeSession(message_reply()))

        await anthropic.generate([LLMMessage.user("one"), LLMMessage.user("two")], "sk")

        assert session.last_request["json"]["messages"] == [
            {
                "role": "user",
                "content": [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}],
            }
        ]

    @pytest.mark.asyncio
    async def test_images_become_source_blocks(self, anthropic):
        session = attach_session(anthropic, FakeSession(message_reply()))

        await anthropic.generate(
            [
                LLMMessage.user(
                    [
                        TextSegment("compare"),
                        ImageSegment("data:image/jpeg;base64,/9j/4AAQ"),
                        ImageSegment("https://example.com/b.png"),
                    ]
                )
            ],
            "sk",
        )

        blocks = session.last_request["json"]["messages"][0]["content"]
        assert blocks[1] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/jpeg", "data": "/9j/4AAQ"},
        }
        assert blocks[2] == {
            "type": "image",
            "source": {"type": "url", "url": "https://example.com/b.png"},
        }

    @pytest.mark.asyncio
    async def test_system_only_conversation_is_rejected(self, anthropic):
        session = attach_session(anthropic, FakeSession())

        with pytest.raises(ProviderConfigurationError):
            await anthropic.generate([LLMMessage.system("rules")], "sk")

        assert session.requests == []


class TestStream:

    @pytest.mark.asyncio
    async def test_event_typed_stream(self, anthropic):
        lines = [
            "event: message_start",
            *sse(
                {"type": "message_start", "message": {"usage": {"input_tokens": 20}}},
                done=False,
            ),
            "event: content_block_delta",
            *sse(
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hel"}},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "lo"}},
                {"type": "message_delta", "usage": {"output_tokens": 2}},
                {"type": "message_stop"},
                done=False,
            ),
        ]
        session = attach_session(anthropic, FakeSession(FakeResponse(lines=lines)))
        received = []

        usage = await anthropic.stream([LLMMessage.user("hi")], "sk", received.append)

        assert received == ["Hel", "lo"]
        assert usage.prompt_tokens == 20
        assert usage.completion_tokens == 2
        assert session.last_request["json"]["stream"] is True

    @pytest.mark.asyncio
    async def test_overloaded_event_is_transient(self, anthropic):
        lines = sse(
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "a"}},
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
            done=False,
        )
        attach_session(anthropic, FakeSession(FakeResponse(lines=lines)))

        with pytest.raises(ServerError) as exc_info:
            await anthropic.stream([LLMMessage.user("hi")], "sk", lambda t: None)

        assert exc_info.value.status_code == 529
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_no_usage_events(self, anthropic):
        lines = sse(
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "x"}},
            done=False,
        )
        attach_session(anthropic, FakeSession(FakeResponse(lines=lines)))

        assert await anthropic.stream([LLMMessage.user("hi")], "sk", lambda t: None) is None
