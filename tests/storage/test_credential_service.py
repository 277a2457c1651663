import json

import pytest

from pagepilot.llm.constants import RedisKeys
from pagepilot.storage.credential_service import (
    EMPTY_CREDENTIAL,
    PROVIDER_LIST_KEY,
    CredentialService,
    InMemoryCredentialService,
    ProviderCredential,
)
from pagepilot.storage.secret_store import PlaintextSecretStore, SecretStore
from tests.mocks import FakeRedis, ReversingSecretStore
from tests.utils.assertions import assert_event_logged


@pytest.fixture
def secret_store() -> ReversingSecretStore:
    return ReversingSecretStore()


@pytest.fixture
def credential_service(fake_redis, secret_store) -> CredentialService:
    return CredentialService(fake_redis, secret_store)


class TestStoreAndResolve:

    @pytest.mark.asyncio
    async def test_round_trip_through_secret_store(self, credential_service, fake_redis):
        result = await credential_service.set_provider_config("openai", "sk-abc")

        assert result.is_success()
        stored = json.loads(fake_redis.store[f"{RedisKeys.CREDENTIAL_PREFIX}openai"])
        assert stored["api_key"] == "v1:cba-ks"

        credential = await credential_service.get_provider_config("openai")
        assert credential == ProviderCredential("sk-abc")
        assert credential.is_configured

    @pytest.mark.asyncio
    async def test_endpoint_is_kept(self, credential_service):
        endpoint = "https://res.openai.azure.com/openai/deployments/gpt4o"
        await credential_service.set_provider_config("azure", "az", endpoint=endpoint)

        credential = await credential_service.get_provider_config("azure")

        assert credential.endpoint == endpoint

    @pytest.mark.asyncio
    async def test_unknown_provider_is_empty(self, credential_service):
        assert await credential_service.get_provider_config("groq") == EMPTY_CREDENTIAL

    @pytest.mark.asyncio
    async def test_keyless_entry_skips_encryption(self, credential_service, fake_redis):
        await credential_service.set_provider_config("ollama", "", endpoint="http://gpu:11434/v1")

        credential = await credential_service.get_provider_config("ollama")

        assert credential.api_key == ""
        assert credential.endpoint == "http://gpu:11434/v1"

    @pytest.mark.asyncio
    async def test_provider_id_required(self, credential_service):
        result = await credential_service.set_provider_config("", "sk")

        assert result.is_failure()
        assert result.error_type == "ValidationError"

    def test_repr_masks_key(self):
        assert "sk-secret" not in repr(ProviderCredential("sk-secret"))

    def test_plaintext_store_satisfies_protocol(self, secret_store):
        assert isinstance(PlaintextSecretStore(), SecretStore)
        assert isinstance(secret_store, SecretStore)


class TestFailures:

    @pytest.mark.asyncio
    async def test_decrypt_failure_resolves_empty(self, credential_service, secret_store, caplog):
        await credential_service.set_provider_config("openai", "sk-abc")
        secret_store.fail_decrypt = True

        credential = await credential_service.get_provider_config("openai")

        assert credential == EMPTY_CREDENTIAL
        assert_event_logged(
            caplog, "credential_decrypt_failed", provider_id="openai", error_type="ValueError"
        )

    @pytest.mark.asyncio
    async def test_redis_failure_resolves_empty(self, credential_service, fake_redis):
        await credential_service.set_provider_config("openai", "sk-abc")
        fake_redis.fail = True

        assert await credential_service.get_provider_config("openai") == EMPTY_CREDENTIAL

    @pytest.mark.asyncio
    async def test_corrupt_record_resolves_empty(self, credential_service, fake_redis):
        fake_redis.store[f"{RedisKeys.CREDENTIAL_PREFIX}openai"] = "{broken"

        assert await credential_service.get_provider_config("openai") == EMPTY_CREDENTIAL

    @pytest.mark.asyncio
    async def test_store_failure_is_a_result(self, credential_service, fake_redis, caplog):
        fake_redis.fail = True

        result = await credential_service.set_provider_config("openai", "sk")

        assert result.is_failure()
        assert result.error_type == "StorageError"
        assert_event_logged(caplog, "credential_store_failed", provider_id="openai")

    @pytest.mark.asyncio
    async def test_encrypt_failure_is_a_result(self, fake_redis):
        class BrokenStore(ReversingSecretStore):
            async def encrypt(self, plaintext):
                raise RuntimeError("HSM offline")

        service = CredentialService(fake_redis, BrokenStore())

        result = await service.set_provider_config("openai", "sk")

        assert result.is_failure()
        assert result.error_type == "SecretStoreError"
        assert fake_redis.store == {}


class TestAdministration:

    @pytest.mark.asyncio
    async def test_list_and_delete(self, credential_service, fake_redis):
        await credential_service.set_provider_config("openai", "a")
        await credential_service.set_provider_config("anthropic", "b")

        assert await credential_service.list_configured_providers() == ["anthropic", "openai"]

        assert (await credential_service.delete_provider_config("openai")).unwrap() is True
        assert await credential_service.list_configured_providers() == ["anthropic"]
        assert fake_redis.sets[PROVIDER_LIST_KEY] == {"anthropic"}

    @pytest.mark.asyncio
    async def test_delete_missing(self, credential_service):
        result = await credential_service.delete_provider_config("openai")

        assert result.is_failure()
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_list_when_redis_down(self, credential_service, fake_redis):
        fake_redis.fail = True

        assert await credential_service.list_configured_providers() == []

    @pytest.mark.asyncio
    async def test_rotate_reencrypts_every_credential(
        self, credential_service, fake_redis, secret_store, caplog
    ):
        await credential_service.set_provider_config("openai", "sk-1")
        await credential_service.set_provider_config("groq", "gsk-2")

        result = await credential_service.rotate_key()

        assert result.unwrap() == 2
        assert secret_store.generation == 2
        stored = json.loads(fake_redis.store[f"{RedisKeys.CREDENTIAL_PREFIX}groq"])
        assert stored["api_key"].startswith("v2:")
        assert (await credential_service.get_provider_config("openai")).api_key == "sk-1"
        assert_event_logged(caplog, "credentials_rotated", rewritten=2, skipped=[])

    @pytest.mark.asyncio
    async def test_rotate_skips_unreadable_credentials(self, credential_service, fake_redis):
        await credential_service.set_provider_config("openai", "sk-1")
        fake_redis.store[f"{RedisKeys.CREDENTIAL_PREFIX}groq"] = json.dumps(
            {"api_key": "v9:garbage", "endpoint": None}
        )
        fake_redis.sets[PROVIDER_LIST_KEY].add("groq")

        result = await credential_service.rotate_key()

        assert result.unwrap() == 1

    @pytest.mark.asyncio
    async def test_rotate_failure(self, fake_redis):
        class NoRotate(ReversingSecretStore):
            async def rotate_key(self):
                raise RuntimeError("keyring locked")

        service = CredentialService(fake_redis, NoRotate())
        await service.set_provider_config("openai", "sk")

        result = await service.rotate_key()

        assert result.is_failure()
        assert (await service.get_provider_config("openai")).api_key == "sk"


class TestInMemoryCredentialService:

    @pytest.mark.asyncio
    async def test_basic_operations(self):
        service = InMemoryCredentialService({"openai": ProviderCredential("sk")})

        assert (await service.get_provider_config("openai")).api_key == "sk"
        assert await service.get_provider_config("groq") == EMPTY_CREDENTIAL

        await service.set_provider_config("groq", "gsk")
        assert await service.list_configured_providers() == ["groq", "openai"]
        assert (await service.rotate_key()).unwrap() == 2

        assert (await service.delete_provider_config("groq")).is_success()
        assert (await service.delete_provider_config("groq")).is_failure()
