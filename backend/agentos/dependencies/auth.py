"""FastAPI dependencies that expose the *current user* and *admin guard*.

The development bypass and JWT validation live in strategy classes under
:pymod:`agentos.auth.strategy`.  The concrete strategy is picked from
:pydata:`settings.auth_disabled` so request handlers stay branch-free.
"""

from __future__ import annotations

from fastapi import Depends
from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from sqlalchemy.orm import Session

from agentos.auth.strategy import DevAuthStrategy
from agentos.auth.strategy import JWTAuthStrategy
from agentos.config import get_settings
from agentos.core.implementations import SQLAlchemyRepository
from agentos.database import get_db
from agentos.models.enums import UserRole

_settings = get_settings()

# Tests patch this flag to exercise the JWT path.
AUTH_DISABLED: bool = _settings.auth_disabled  # noqa: N816

DEV_EMAIL: str = DevAuthStrategy.DEV_EMAIL

_strategy_cache: dict[str, object] = {}


def _get_strategy():  # noqa: D401 – internal helper
    """Return the singleton strategy for the current ``AUTH_DISABLED`` value."""

    if AUTH_DISABLED:
        if "dev" not in _strategy_cache:
            _strategy_cache["dev"] = DevAuthStrategy()
        return _strategy_cache["dev"]

    if "jwt" not in _strategy_cache:
        _strategy_cache["jwt"] = JWTAuthStrategy()
    return _strategy_cache["jwt"]


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """Return the authenticated *User* row or raise **401**."""

    if "Authorization" not in request.headers and not AUTH_DISABLED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _get_strategy().get_current_user(request, SQLAlchemyRepository(db))


def require_admin(current_user=Depends(get_current_user)):
    """FastAPI dependency that ensures the user has role == ``ADMIN``."""

    if getattr(current_user, "role", UserRole.USER) != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")

    return current_user
