import pytest

from pagepilot.llm.exceptions import ProviderConfigurationError
from pagepilot.llm.providers import AzureOpenAIProvider
from pagepilot.llm.types import LLMMessage
from tests.mocks import FakeResponse, FakeSession, attach_session, sse

DEPLOYMENT = "https://pagepilot.openai.azure.com/openai/deployments/gpt4o/"


@pytest.fixture
def azure() -> AzureOpenAIProvider:
    return AzureOpenAIProvider()


class TestAzureOpenAIProvider:

    @pytest.mark.asyncio
    async def test_request_targets_deployment(self, azure):
        reply = FakeResponse(body={"choices": [{"message": {"content": "hi"}}]})
        session = attach_session(azure, FakeSession(reply))

        response = await azure.generate([LLMMessage.user("hello")], "az-key", endpoint=DEPLOYMENT)

        request = session.last_request
        assert request["url"] == (
            "https://pagepilot.openai.azure.com/openai/deployments/gpt4o/chat/completions"
        )
        assert request["params"] == {"api-version": "2024-02-15-preview"}
        assert request["headers"]["api-key"] == "az-key"
        assert "Authorization" not in request["headers"]
        assert "model" not in request["json"]
        assert response.content == "hi"

    @pytest.mark.asyncio
    async def test_missing_endpoint_is_configuration_error(self, azure):
        session = attach_session(azure, FakeSession())

        with pytest.raises(ProviderConfigurationError) as exc_info:
            await azure.generate([LLMMessage.user("hello")], "az-key")

        assert exc_info.value.config_field == "endpoint"
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_stream(self, azure):
        lines = sse({"choices": [{"delta": {"content": "ok"}}]})
        attach_session(azure, FakeSession(FakeResponse(lines=lines)))
        received = []

        await azure.stream([LLMMessage.user("hi")], "k", received.append, endpoint=DEPLOYMENT)

        assert received == ["ok"]
