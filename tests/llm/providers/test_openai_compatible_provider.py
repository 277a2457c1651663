import aiohttp
import pytest

from pagepilot.llm.base_provider import ImagePolicy
from pagepilot.llm.exceptions import (
    AuthenticationError,
    ImageNotSupportedError,
    LLMProviderError,
    ProviderConnectionError,
    RateLimitError,
    ServerError,
)
from pagepilot.llm.providers import OpenAICompatibleProvider, create_default_providers
from pagepilot.llm.types import ImageSegment, LLMMessage, TextSegment
from tests.mocks import FakeResponse, FakeSession, attach_session, sse
from tests.utils.assertions import assert_event_logged

PNG = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def openai() -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(
        "openai", "OpenAI", "https://api.openai.com/v1/", "gpt-4o"
    )


def completion(content: str = "Hi!", usage=None, model: str = "gpt-4o-2024-08-06"):
    body = {"model": model, "choices": [{"message": {"role": "assistant", "content": content}}]}
    if usage is not None:
        body["usage"] = usage
    return FakeResponse(body=body)


class TestGenerate:

    @pytest.mark.asyncio
    async def test_request_shape(self, openai):
        session = attach_session(openai, FakeSession(completion()))

        await openai.generate([LLMMessage.user("hello")], "sk-live")

        request = session.last_request
        assert request["url"] == "https://api.openai.com/v1/chat/completions"
        assert request["headers"]["Authorization"] == "Bearer sk-live"
        assert request["json"] == {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "hello"}],
        }

    @pytest.mark.asyncio
    async def test_parses_content_and_usage(self, openai):
        attach_session(
            openai,
            FakeSession(
                completion(
                    "Paris",
                    usage={"prompt_tokens": 9, "completion_tokens": 1, "total_tokens": 10},
                )
            ),
        )

        response = await openai.generate([LLMMessage.user("Capital of France?")], "sk")

        assert response.content == "Paris"
        assert response.usage.total_tokens == 10
        assert response.usage.estimated is False
        assert response.model == "gpt-4o-2024-08-06"
        assert response.provider_id == "openai"

    @pytest.mark.asyncio
    async def test_missing_usage_is_none(self, openai):
        attach_session(openai, FakeSession(completion()))

        response = await openai.generate([LLMMessage.user("hi")], "sk")

        assert response.usage is None

    @pytest.mark.asyncio
    async def test_endpoint_and_model_override(self, openai):
        session = attach_session(openai, FakeSession(completion()))

        await openai.generate(
            [LLMMessage.user("hi")], "sk", model="gpt-4o-mini", endpoint="https://proxy.local/v1"
        )

        assert session.last_request["url"] == "https://proxy.local/v1/chat/completions"
        assert session.last_request["json"]["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_image_segments_use_image_url_parts(self, openai):
        session = attach_session(openai, FakeSession(completion()))

        await openai.generate(
            [LLMMessage.user([TextSegment("describe"), ImageSegment(PNG, "high")])], "sk"
        )

        content = session.last_request["json"]["messages"][0]["content"]
        assert content == [
            {"type": "text", "text": "describe"},
            {"type": "image_url", "image_url": {"url": PNG, "detail": "high"}},
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_class",
        [(401, AuthenticationError), (429, RateLimitError), (503, ServerError)],
    )
    async def test_http_errors(self, openai, caplog, status, error_class):
        attach_session(openai, FakeSession(FakeResponse(status, body="nope")))

        with pytest.raises(error_class):
            await openai.generate([LLMMessage.user("hi")], "sk")

        assert_event_logged(caplog, "provider_http_error", provider_id="openai", status=status)

    @pytest.mark.asyncio
    async def test_connection_failure(self, openai):
        attach_session(openai, FakeSession(aiohttp.ClientConnectionError("refused")))

        with pytest.raises(ProviderConnectionError):
            await openai.generate([LLMMessage.user("hi")], "sk")


class TestKeylessAndImages:

    @pytest.mark.asyncio
    async def test_keyless_provider_sends_no_authorization(self):
        ollama = OpenAICompatibleProvider(
            "ollama", "Ollama", "http://localhost:11434/v1", "llava", requires_api_key=False
        )
        session = attach_session(ollama, FakeSession(completion()))

        await ollama.generate([LLMMessage.user("hi")], "")

        assert "Authorization" not in session.last_request["headers"]

    @pytest.mark.asyncio
    async def test_strip_policy_drops_images(self, caplog):
        groq = OpenAICompatibleProvider(
            "groq", "Groq", "https://api.groq.com/openai/v1", "llama",
            image_policy=ImagePolicy.STRIP,
        )
        session = attach_session(groq, FakeSession(completion()))

        await groq.generate([LLMMessage.user([TextSegment("caption"), ImageSegment(PNG)])], "k")

        assert session.last_request["json"]["messages"] == [
            {"role": "user", "content": "caption"}
        ]
        assert_event_logged(caplog, "image_segments_stripped", images_dropped=1)

    @pytest.mark.asyncio
    async def test_reject_policy_raises_before_sending(self):
        text_only = OpenAICompatibleProvider(
            "deepseek", "DeepSeek", "https://api.deepseek.com/v1", "deepseek-chat",
            image_policy=ImagePolicy.REJECT,
        )
        session = attach_session(text_only, FakeSession())

        with pytest.raises(ImageNotSupportedError):
            await text_only.generate([LLMMessage.user([ImageSegment(PNG)])], "k")

        assert session.requests == []


class TestStream:

    @pytest.mark.asyncio
    async def test_chunks_in_order(self, openai):
        lines = sse(
            {"choices": [{"delta": {"role": "assistant"}}]},
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2}},
        )
        session = attach_session(openai, FakeSession(FakeResponse(lines=lines)))
        received = []

        usage = await openai.stream([LLMMessage.user("hi")], "sk", received.append)

        assert received == ["Hel", "lo"]
        assert usage.total_tokens == 5
        assert session.last_request["json"]["stream"] is True

    @pytest.mark.asyncio
    async def test_ignores_comments_and_bad_json(self, openai, caplog):
        lines = [": keep-alive", "event: ping", "data: {not json"] + sse(
            {"choices": [{"delta": {"content": "ok"}}]}
        )
        attach_session(openai, FakeSession(FakeResponse(lines=lines)))
        received = []

        usage = await openai.stream([LLMMessage.user("hi")], "sk", received.append)

        assert received == ["ok"]
        assert usage is None
        assert_event_logged(caplog, "provider_stream_parse_error", provider_id="openai")

    @pytest.mark.asyncio
    async def test_stops_at_done(self, openai):
        lines = sse({"choices": [{"delta": {"content": "a"}}]}) + [
            'data: {"choices": [{"delta": {"content": "late"}}]}'
        ]
        attach_session(openai, FakeSession(FakeResponse(lines=lines)))
        received = []

        await openai.stream([LLMMessage.user("hi")], "sk", received.append)

        assert received == ["a"]

    @pytest.mark.asyncio
    async def test_error_event_mid_stream(self, openai):
        lines = sse(
            {"choices": [{"delta": {"content": "par"}}]},
            {"error": {"code": 502, "message": "upstream gone"}},
        )
        attach_session(openai, FakeSession(FakeResponse(lines=lines)))
        received = []

        with pytest.raises(ServerError, match="upstream gone"):
            await openai.stream([LLMMessage.user("hi")], "sk", received.append)

        assert received == ["par"]

    @pytest.mark.asyncio
    async def test_error_event_without_code(self, openai):
        lines = sse({"error": "something odd"})
        attach_session(openai, FakeSession(FakeResponse(lines=lines)))

        with pytest.raises(LLMProviderError) as exc_info:
            await openai.stream([LLMMessage.user("hi")], "sk", lambda t: None)

        assert exc_info.value.error_type == "stream_error_event"

    @pytest.mark.asyncio
    async def test_async_callback(self, openai):
        attach_session(
            openai,
            FakeSession(FakeResponse(lines=sse({"choices": [{"delta": {"content": "x"}}]}))),
        )
        received = []

        async def on_chunk(text):
            received.append(text)

        await openai.stream([LLMMessage.user("hi")], "sk", on_chunk)

        assert received == ["x"]


class TestDefaultProviders:

    def test_one_adapter_per_backend(self):
        providers = create_default_providers()

        assert [p.provider_id for p in providers] == [
            "ollama", "gemini", "groq", "openrouter", "deepseek",
            "openai", "anthropic", "perplexity", "azure",
        ]

    def test_only_ollama_is_keyless(self):
        keyless = [p.provider_id for p in create_default_providers() if not p.requires_api_key]

        assert keyless == ["ollama"]

    def test_custom_ollama_url(self):
        ollama = create_default_providers(ollama_url="http://gpu-box:11434/")[0]

        assert ollama.base_url == "http://gpu-box:11434/v1"
