import pytest

from pagepilot.llm.base_provider import ImagePolicy, emit_chunk, split_system_prompt
from pagepilot.llm.exceptions import ImageNotSupportedError
from pagepilot.llm.types import ImageSegment, LLMMessage, TextSegment
from tests.mocks import FakeProvider

IMAGE_MESSAGE = LLMMessage.user([TextSegment("see"), ImageSegment("https://x/y.png")])


class TestImagePolicy:

    def test_supported_passes_images(self):
        provider = FakeProvider("openai")

        assert provider.prepare_messages([IMAGE_MESSAGE]) == [IMAGE_MESSAGE]
        assert provider.supports_vision is True

    def test_strip(self):
        provider = FakeProvider("groq", image_policy=ImagePolicy.STRIP)

        prepared = provider.prepare_messages([IMAGE_MESSAGE])

        assert prepared == [LLMMessage.user("see")]
        assert provider.supports_vision is False

    def test_reject(self):
        provider = FakeProvider("deepseek", image_policy=ImagePolicy.REJECT)

        with pytest.raises(ImageNotSupportedError):
            provider.prepare_messages([IMAGE_MESSAGE], "deepseek-chat")

    def test_text_only_messages_untouched_by_any_policy(self):
        provider = FakeProvider("deepseek", image_policy=ImagePolicy.REJECT)
        messages = [LLMMessage.user("plain")]

        assert provider.prepare_messages(messages) == messages


class TestSplitSystemPrompt:

    def test_joins_system_and_trims_to_first_user(self):
        system, history = split_system_prompt(
            [
                LLMMessage.system("one"),
                LLMMessage.assistant("greeting"),
                LLMMessage.system("two"),
                LLMMessage.user("question"),
            ]
        )

        assert system == "one\n\ntwo"
        assert history == [LLMMessage.user("question")]

    def test_no_user_message(self):
        system, history = split_system_prompt([LLMMessage.assistant("hi")])

        assert system == ""
        assert history == []


class TestEmitChunk:

    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks(self):
        received = []

        async def async_callback(text):
            received.append(("async", text))

        await emit_chunk(lambda text: received.append(("sync", text)), "a")
        await emit_chunk(async_callback, "b")

        assert received == [("sync", "a"), ("async", "b")]
