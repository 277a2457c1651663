from .credential_service import (
    EMPTY_CREDENTIAL,
    CredentialService,
    InMemoryCredentialService,
    ProviderCredential,
)
from .secret_store import PlaintextSecretStore, SecretStore, SecretStoreError
from .snapshot_store import SnapshotStore

__all__ = [
    "EMPTY_CREDENTIAL",
    "CredentialService",
    "InMemoryCredentialService",
    "PlaintextSecretStore",
    "ProviderCredential",
    "SecretStore",
    "SecretStoreError",
    "SnapshotStore",
]
