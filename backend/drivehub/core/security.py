"""Encryption of OAuth tokens at rest."""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from drivehub.core.config import settings
from drivehub.core.logging import get_logger

logger = get_logger(__name__)


class TokenCipher:
    """Fernet wrapper used for every stored access/refresh token."""

    def __init__(self, key: bytes):
        self._fernet = Fernet(key)

    def encrypt(self, data: str | None) -> str | None:
        """Encrypt a token, passing ``None`` through."""
        if data is None:
            return None
        return self._fernet.encrypt(data.encode()).decode()

    def decrypt(self, encrypted_data: str | None) -> str | None:
        """Decrypt a stored token, passing ``None`` through.

        Raises:
            InvalidToken: If the value was encrypted with another key.
        """
        if encrypted_data is None:
            return None
        return self._fernet.decrypt(encrypted_data.encode()).decode()


_cipher: TokenCipher | None = None


def get_token_cipher() -> TokenCipher:
    """Get or create the process-wide token cipher."""
    global _cipher
    if _cipher is None:
        if settings.encryption_key:
            # Fernet expects the key as base64-encoded bytes (not decoded)
            key = settings.encryption_key.encode()
        else:
            key = Fernet.generate_key()
            logger.warning(
                "encryption_key_generated",
                message="Using auto-generated encryption key. Set DRIVEHUB_ENCRYPTION_KEY for persistence.",
            )
        _cipher = TokenCipher(key)
    return _cipher


__all__ = ["InvalidToken", "TokenCipher", "get_token_cipher"]
