"""Application settings.

All environment lookups live here.  :func:`get_settings` loads the repo-level
``.env`` (or ``.env.test`` when ``NODE_ENV=test``) and returns a fresh
:class:`Settings`; callers never read ``os.environ`` themselves.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# backend/agentos/config/__init__.py -> repository root

_REPO_ROOT = Path(__file__).resolve().parents[3]


def _truthy(value: str | None) -> bool:  # noqa: D401 – small helper
    """``1``, ``true``, ``yes`` and ``on`` (any case) count as enabled."""

    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass
class Settings:  # noqa: D401 – simple data container
    """Resolved configuration for one process."""

    # Runtime flags -----------------------------------------------------
    testing: bool
    auth_disabled: bool

    # Secrets -----------------------------------------------------------
    jwt_secret: str
    fernet_secret: Any
    cron_secret_token: Any

    # Database ---------------------------------------------------------
    database_url: str

    # HTTP surface ------------------------------------------------------
    log_level: str
    allowed_cors_origins: str
    app_public_url: str | None
    integrations_page_path: str

    # LLM ---------------------------------------------------------------
    openai_api_key: Any
    chat_model: str
    chat_max_tokens: int

    # OAuth clients -----------------------------------------------------
    google_client_id: Any
    google_client_secret: Any
    slack_client_id: Any
    slack_client_secret: Any
    notion_client_id: Any
    notion_client_secret: Any
    asana_client_id: Any
    asana_client_secret: Any

    # Task scheduling ---------------------------------------------------
    scheduler_enabled: bool
    scheduler_interval_seconds: int
    task_batch_size: int
    task_retention_days: int

    @property
    def public_url(self) -> str:
        """Base URL used to build OAuth redirect URIs."""
        return (self.app_public_url or "http://localhost:8000").rstrip("/")

    def oauth_client(self, tool: str) -> tuple[Any, Any]:
        """Return ``(client_id, client_secret)`` for *tool*."""

        prefix = "google" if tool == "gmail" else tool
        return getattr(self, f"{prefix}_client_id", None), getattr(self, f"{prefix}_client_secret", None)

    # Helper for tests to override values at runtime -------------------
    def override(self, **kwargs: Any) -> None:  # pragma: no cover – test util
        for key, value in kwargs.items():
            if not hasattr(self, key):  # pragma: no cover – safety
                raise AttributeError(f"Settings has no attribute '{key}'")
            setattr(self, key, value)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _load_settings() -> Settings:  # noqa: D401 – helper
    """Read every setting, loading the dotenv file first."""

    node_env = os.getenv("NODE_ENV", "development")

    if node_env == "test":
        env_path = _REPO_ROOT / ".env.test"
        if not env_path.exists():
            env_path = _REPO_ROOT / ".env"
    else:
        env_path = _REPO_ROOT / ".env"

    if env_path.exists():
        current_testing = os.getenv("TESTING")
        load_dotenv(env_path, override=True)
        # An explicit TESTING flag from the test runner wins over .env
        if current_testing:
            os.environ["TESTING"] = current_testing

    testing = _truthy(os.getenv("TESTING"))

    return Settings(
        testing=testing,
        auth_disabled=_truthy(os.getenv("AUTH_DISABLED")) or testing,
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        fernet_secret=os.getenv("FERNET_SECRET"),
        cron_secret_token=os.getenv("CRON_SECRET_TOKEN"),
        database_url=os.getenv("DATABASE_URL", ""),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        allowed_cors_origins=os.getenv("ALLOWED_CORS_ORIGINS", ""),
        app_public_url=os.getenv("APP_PUBLIC_URL"),
        integrations_page_path=os.getenv("INTEGRATIONS_PAGE_PATH", "/dashboard/integrations"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        chat_model=os.getenv("CHAT_MODEL", "gpt-4o-mini"),
        chat_max_tokens=_int_env("CHAT_MAX_TOKENS", 1000),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
        slack_client_id=os.getenv("SLACK_CLIENT_ID"),
        slack_client_secret=os.getenv("SLACK_CLIENT_SECRET"),
        notion_client_id=os.getenv("NOTION_CLIENT_ID"),
        notion_client_secret=os.getenv("NOTION_CLIENT_SECRET"),
        asana_client_id=os.getenv("ASANA_CLIENT_ID"),
        asana_client_secret=os.getenv("ASANA_CLIENT_SECRET"),
        scheduler_enabled=_truthy(os.getenv("SCHEDULER_ENABLED")),
        scheduler_interval_seconds=_int_env("SCHEDULER_INTERVAL_SECONDS", 60),
        task_batch_size=_int_env("TASK_BATCH_SIZE", 20),
        task_retention_days=_int_env("TASK_RETENTION_DAYS", 7),
    )


# ------------------------------------------------------------------
# Runtime validation – fail fast when *required* secrets are missing.
# ------------------------------------------------------------------


def _validate_required(settings: Settings) -> None:  # noqa: D401 – helper
    """Abort startup when mandatory configuration is missing.

    Skipped under *TESTING* where the suite provides its own database and
    deterministic keys.
    """

    if settings.testing:
        return

    missing_vars = []

    if not settings.database_url:
        missing_vars.append("DATABASE_URL")

    if not settings.fernet_secret:
        missing_vars.append("FERNET_SECRET")

    if not settings.cron_secret_token:
        missing_vars.append("CRON_SECRET_TOKEN")

    if not settings.auth_disabled:
        weak = settings.jwt_secret.strip() in {"", "dev-secret"} or len(settings.jwt_secret) < 16
        if weak:
            missing_vars.append("JWT_SECRET (must be >=16 chars, not 'dev-secret')")

    if missing_vars:
        raise RuntimeError(
            f"Missing required configuration: {', '.join(missing_vars)}. "
            "Set them in .env or the deployment environment."
        )


def get_settings() -> Settings:  # noqa: D401 – public accessor
    """Load and validate settings."""

    settings = _load_settings()
    _validate_required(settings)
    return settings


__all__ = [
    "Settings",
    "get_settings",
]
