from abc import ABC, abstractmethod


class TokenCipher(ABC):
    """
    Symmetric encryption for OAuth tokens at rest.

    Injected into the token store so tests can use a double without
    real key material.
    """

    @abstractmethod
    def encrypt(self, token: str) -> str:
        """Encrypt a plaintext token for storage."""
        ...

    @abstractmethod
    def decrypt(self, stored: str) -> str:
        """Decrypt a stored token. Never log the result."""
        ...
