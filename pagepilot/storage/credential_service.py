"""
Credential Service for LLM provider API keys and endpoints.

Credentials are stored in Redis as JSON with the API key passed through
the secret store. A credential that cannot be read or decrypted resolves
to an empty one, which the orchestrator treats as "not configured".
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, cast

from redis.asyncio import Redis

from ..llm.constants import RedisKeys
from ..utils.logging import log_event, track
from ..utils.result import (
    Result,
    Success,
    not_found_error,
    secret_store_error,
    storage_error,
    validation_error,
)
from .secret_store import PlaintextSecretStore, SecretStore

logger = logging.getLogger(__name__)

PROVIDER_LIST_KEY = "pagepilot:credentials"


@dataclass(frozen=True)
class ProviderCredential:
    api_key: str = ""
    endpoint: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def __repr__(self) -> str:
        masked = "***" if self.api_key else ""
        return f"ProviderCredential(api_key={masked!r}, endpoint={self.endpoint!r})"


EMPTY_CREDENTIAL = ProviderCredential()


class CredentialService:
    """
    Credential Resolver backed by Redis.

    Args:
        redis_client: Async Redis client
        secret_store: Encrypts keys before they are written
    """

    def __init__(self, redis_client: Redis, secret_store: Optional[SecretStore] = None):
        self.redis = redis_client
        self.secret_store = secret_store or PlaintextSecretStore()

        log_event(
            "credential_service_initialized",
            {
                "storage": "redis",
                "secret_store": type(self.secret_store).__name__,
            },
            level=logging.DEBUG,
        )

    def _get_provider_key(self, provider_id: str) -> str:
        return f"{RedisKeys.CREDENTIAL_PREFIX}{provider_id}"

    @track(
        operation="credential_service_get_provider_config",
        include_args=["provider_id"],
        track_performance=True,
        frequency="medium_frequency",
    )
    async def get_provider_config(self, provider_id: str) -> ProviderCredential:
        """
        Resolve a provider's credential.

        Never raises: storage and decryption failures are logged and
        resolve to an empty credential.
        """
        try:
            data = await self.redis.get(self._get_provider_key(provider_id))
            if not data:
                return EMPTY_CREDENTIAL

            stored = json.loads(data)
            encrypted_key = stored.get("api_key") or ""
            api_key = await self.secret_store.decrypt(encrypted_key) if encrypted_key else ""
            return ProviderCredential(api_key=api_key, endpoint=stored.get("endpoint"))

        except Exception as e:
            log_event(
                "credential_decrypt_failed",
                {
                    "provider_id": provider_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                level=logging.WARNING,
            )
            return EMPTY_CREDENTIAL

    @track(
        operation="credential_service_set_provider_config",
        include_args=["provider_id"],
        track_performance=True,
        frequency="low_frequency",
    )
    async def set_provider_config(
        self,
        provider_id: str,
        api_key: str,
        endpoint: Optional[str] = None,
    ) -> Result[None, str]:
        """
        Store or replace a provider's credential.

        Args:
            provider_id: Provider identifier
            api_key: Plaintext API key (may be empty for keyless providers)
            endpoint: Optional endpoint / deployment URL

        Returns:
            Result indicating success or failure
        """
        if not provider_id:
            return validation_error("provider_id is required")

        try:
            encrypted = await self.secret_store.encrypt(api_key) if api_key else ""
        except Exception as e:
            log_event(
                "credential_encrypt_failed",
                {"provider_id": provider_id, "error_type": type(e).__name__},
                level=logging.ERROR,
            )
            return secret_store_error(
                f"Failed to encrypt credential: {e}", {"provider_id": provider_id}
            )

        try:
            payload = {"api_key": encrypted, "endpoint": endpoint}
            await self.redis.set(self._get_provider_key(provider_id), json.dumps(payload))
            await cast(Any, self.redis.sadd(PROVIDER_LIST_KEY, provider_id))
        except Exception as e:
            log_event(
                "credential_store_failed",
                {"provider_id": provider_id, "error": str(e)},
                level=logging.ERROR,
            )
            return storage_error(
                f"Failed to store credential: {e}", {"provider_id": provider_id}
            )

        log_event(
            "credential_stored",
            {"provider_id": provider_id, "has_endpoint": endpoint is not None},
        )
        return Success(None)

    async def delete_provider_config(self, provider_id: str) -> Result[bool, str]:
        try:
            removed = await self.redis.delete(self._get_provider_key(provider_id))
            await cast(Any, self.redis.srem(PROVIDER_LIST_KEY, provider_id))
        except Exception as e:
            log_event(
                "credential_delete_failed",
                {"provider_id": provider_id, "error": str(e)},
                level=logging.ERROR,
            )
            return storage_error(f"Failed to delete credential: {e}")

        if not removed:
            return not_found_error(f"No credential stored for {provider_id}")

        log_event("credential_deleted", {"provider_id": provider_id})
        return Success(True)

    async def list_configured_providers(self) -> List[str]:
        try:
            members = await cast(Any, self.redis.smembers(PROVIDER_LIST_KEY))
        except Exception as e:
            log_event(
                "credential_list_failed", {"error": str(e)}, level=logging.ERROR
            )
            return []

        return sorted(m.decode() if isinstance(m, bytes) else m for m in members or ())

    @track(
        operation="credential_service_rotate_key",
        track_performance=True,
        frequency="low_frequency",
    )
    async def rotate_key(self) -> Result[int, str]:
        """
        Rotate the secret store key and re-encrypt every stored credential.

        Credentials that cannot be decrypted before rotation are left as
        they are and counted as skipped.

        Returns:
            Result with the number of credentials re-encrypted
        """
        provider_ids = await self.list_configured_providers()

        plaintexts: Dict[str, ProviderCredential] = {}
        skipped: List[str] = []
        for provider_id in provider_ids:
            credential = await self.get_provider_config(provider_id)
            if credential.is_configured:
                plaintexts[provider_id] = credential
            else:
                skipped.append(provider_id)

        try:
            await self.secret_store.rotate_key()
        except Exception as e:
            log_event(
                "secret_store_rotation_failed",
                {"error": str(e), "error_type": type(e).__name__},
                level=logging.ERROR,
            )
            return secret_store_error(f"Failed to rotate key: {e}")

        rewritten = 0
        for provider_id, credential in plaintexts.items():
            result = await self.set_provider_config(
                provider_id, credential.api_key, credential.endpoint
            )
            if result.is_success():
                rewritten += 1
            else:
                skipped.append(provider_id)

        log_event(
            "credentials_rotated",
            {"rewritten": rewritten, "skipped": skipped},
            level=logging.WARNING if skipped else logging.INFO,
        )
        return Success(rewritten)


class InMemoryCredentialService:
    """Process-local credential resolver for tests and local runs."""

    def __init__(self, credentials: Optional[Dict[str, ProviderCredential]] = None):
        self._credentials: Dict[str, ProviderCredential] = dict(credentials or {})

    async def get_provider_config(self, provider_id: str) -> ProviderCredential:
        return self._credentials.get(provider_id, EMPTY_CREDENTIAL)

    async def set_provider_config(
        self, provider_id: str, api_key: str, endpoint: Optional[str] = None
    ) -> Result[None, str]:
        if not provider_id:
            return validation_error("provider_id is required")
        self._credentials[provider_id] = ProviderCredential(api_key, endpoint)
        return Success(None)

    async def delete_provider_config(self, provider_id: str) -> Result[bool, str]:
        if self._credentials.pop(provider_id, None) is None:
            return not_found_error(f"No credential stored for {provider_id}")
        return Success(True)

    async def list_configured_providers(self) -> List[str]:
        return sorted(self._credentials)

    async def rotate_key(self) -> Result[int, str]:
        return Success(len(self._credentials))

