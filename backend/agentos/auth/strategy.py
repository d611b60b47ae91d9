"""Authentication strategy abstraction.

The portal accepts two modes which are chosen once at startup:

• **DevAuthStrategy** – auth disabled (local development and tests).  Every
  request runs as the ``dev@local`` user, created on first use.
• **JWTAuthStrategy** – HS256 bearer tokens decoded with *python-jose*.  The
  ``sub`` claim carries the numeric user id.

Sign-in itself happens upstream; :func:`issue_access_token` mints compatible
tokens for operators and the test-suite.
"""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod
from datetime import timedelta
from typing import Any

from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from jose import JWTError
from jose import jwt

from agentos.config import get_settings
from agentos.core.interfaces import Repository
from agentos.models.enums import UserRole
from agentos.utils.time import utc_now

JWT_ALGORITHM = "HS256"


def issue_access_token(user_id: int, expires_in: timedelta = timedelta(hours=1), secret: str | None = None) -> str:
    """Return a signed HS256 token whose subject is *user_id*."""

    payload = {"sub": str(user_id), "exp": int((utc_now() + expires_in).timestamp())}
    return jwt.encode(payload, secret or get_settings().jwt_secret, algorithm=JWT_ALGORITHM)


# ---------------------------------------------------------------------------
# Strategy base-class
# ---------------------------------------------------------------------------


class AuthStrategy(ABC):
    """Pluggable authentication backend (strategy pattern)."""

    @abstractmethod
    def get_current_user(self, request: Request, repo: Repository):  # noqa: D401 – abstract
        """Return the authenticated user or raise **401**."""


# ---------------------------------------------------------------------------
# Development-mode bypass
# ---------------------------------------------------------------------------


class DevAuthStrategy(AuthStrategy):
    """Bypass all checks – used when *AUTH_DISABLED* is true or in tests."""

    DEV_EMAIL = "dev@local"

    def get_current_user(self, request: Request, repo: Repository):  # noqa: D401 – impl
        user = repo.get_user_by_email(self.DEV_EMAIL)
        if user is not None:
            return user
        return repo.create_user(self.DEV_EMAIL, provider="dev", role=UserRole.USER.value, display_name="Dev User")


# ---------------------------------------------------------------------------
# HS256 JWT validation (production)
# ---------------------------------------------------------------------------


class JWTAuthStrategy(AuthStrategy):
    """Production strategy that validates HS256 tokens."""

    def __init__(self, secret: str | None = None):
        self._secret = secret or get_settings().jwt_secret

    def _decode(self, token: str) -> dict[str, Any]:
        return jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])

    def get_current_user(self, request: Request, repo: Repository):  # noqa: D401 – impl
        auth_header: str | None = request.headers.get("Authorization")
        if not auth_header or not auth_header.lower().startswith("bearer "):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

        token = auth_header[7:].strip()
        if not token:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

        try:
            payload = self._decode(token)
        except JWTError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")

        user = repo.get_user(user_id)
        if user is None or not getattr(user, "is_active", True):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

        return user


__all__ = [
    "AuthStrategy",
    "DevAuthStrategy",
    "JWTAuthStrategy",
    "issue_access_token",
]
