import pytest

from pagepilot.config.settings import Settings
from pagepilot.llm.provider_factory import create_llm_service, create_redis_client
from pagepilot.llm.types import ChatRequest, LLMMessage
from pagepilot.safety.permission_service import PermissionLevel
from pagepilot.storage.credential_service import CredentialService, InMemoryCredentialService
from tests.mocks import FakeProvider, FakeRedis, ReversingSecretStore
from tests.utils.assertions import assert_event_logged


def settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestCreateLLMService:

    def test_registers_every_builtin_backend(self, caplog):
        service = create_llm_service(settings())

        assert len(service.registry) == 9
        assert service.router.fallback_chain()[0] == "ollama"
        assert isinstance(service.credentials, InMemoryCredentialService)
        assert service.snapshot_store is None
        assert_event_logged(caplog, "llm_service_created", persistence=False)

    def test_enabled_providers_filter(self):
        service = create_llm_service(settings(enabled_providers=["ollama", "anthropic"]))

        assert service.registry.list_ids() == ["ollama", "anthropic"]

    def test_settings_flow_into_components(self, clock):
        service = create_llm_service(
            settings(
                max_retries=5,
                retry_max_delay_seconds=30,
                failure_threshold=4,
                permission_level="high",
                provider_priority=["groq", "ollama"],
            ),
            clock=clock,
        )

        assert service.retry_policy.max_retries == 5
        assert service.retry_policy.max_delay == 30
        assert service.health_monitor.failure_threshold == 4
        assert service.permissions.level == PermissionLevel.HIGH
        assert service.router.fallback_chain()[:2] == ["groq", "ollama"]

    def test_redis_backs_credentials_and_snapshots(self):
        redis = FakeRedis()

        service = create_llm_service(
            settings(), redis_client=redis, secret_store=ReversingSecretStore()
        )

        assert isinstance(service.credentials, CredentialService)
        assert service.credentials.redis is redis
        assert service.snapshot_store is not None

    @pytest.mark.asyncio
    async def test_custom_providers_and_credentials(self):
        credentials = InMemoryCredentialService()
        await credentials.set_provider_config("mistral", "key")

        service = create_llm_service(
            settings(),
            providers=[FakeProvider("mistral")],
            credential_service=credentials,
        )
        response = await service.chat(ChatRequest([LLMMessage.user("hi")]))

        assert response.provider_id == "mistral"

    def test_duplicate_providers_are_logged(self, caplog):
        service = create_llm_service(
            settings(), providers=[FakeProvider("a"), FakeProvider("a")]
        )

        assert service.registry.list_ids() == ["a"]
        assert_event_logged(caplog, "provider_registration_failed", provider_id="a")


class TestCreateRedisClient:

    def test_uses_configured_url(self):
        client = create_redis_client(settings(redis_url="redis://cache:6380/1"))

        kwargs = client.connection_pool.connection_kwargs
        assert kwargs["host"] == "cache"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 1
        assert kwargs["decode_responses"] is True
