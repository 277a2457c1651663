"""
Secret store contract.

Encryption at rest is delegated to whatever implements ``SecretStore``.
Any of its operations may fail; callers decide how to degrade.
"""

from typing import Protocol, runtime_checkable


class SecretStoreError(Exception):
    """Raised by a secret store that cannot encrypt, decrypt or rotate."""


@runtime_checkable
class SecretStore(Protocol):
    async def encrypt(self, plaintext: str) -> str: ...

    async def decrypt(self, ciphertext: str) -> str: ...

    async def rotate_key(self) -> None: ...


class PlaintextSecretStore:
    """
    Identity secret store for local desktop use.

    The user's machine is the security boundary, so values are stored as
    given.
    """

    async def encrypt(self, plaintext: str) -> str:
        return plaintext

    async def decrypt(self, ciphertext: str) -> str:
        return ciphertext

    async def rotate_key(self) -> None:
        return None
