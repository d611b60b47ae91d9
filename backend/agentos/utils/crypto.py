"""Fernet helpers for OAuth tokens stored at rest.

The key comes from ``FERNET_SECRET`` (url-safe base64, 32 bytes).  It is read
lazily so importing this module never fails in tooling that does not touch
credentials.
"""

from __future__ import annotations

from cryptography.fernet import Fernet
from cryptography.fernet import InvalidToken

from agentos.config import get_settings

_fernet: Fernet | None = None


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        secret = get_settings().fernet_secret
        if not secret:
            raise RuntimeError("FERNET_SECRET environment variable must be set.")
        try:
            _fernet = Fernet(secret.encode())
        except ValueError as exc:
            raise RuntimeError("FERNET_SECRET is not a valid url-safe base64 32-byte key") from exc
    return _fernet


def encrypt(text: str) -> str:  # noqa: D401 – thin wrapper
    """Encrypt *text* and return url-safe base64 ciphertext."""

    return _get_fernet().encrypt(text.encode()).decode()


def decrypt(token: str) -> str:  # noqa: D401 – thin wrapper
    """Decrypt *token* back to a UTF-8 string."""

    try:
        return _get_fernet().decrypt(token.encode()).decode()
    except InvalidToken as exc:
        raise ValueError("decryption failed – invalid key or ciphertext") from exc


__all__ = [
    "encrypt",
    "decrypt",
]
