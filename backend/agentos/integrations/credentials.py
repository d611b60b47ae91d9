"""Credential Store – the only writer of ``integration_credentials`` rows.

Tokens are Fernet-encrypted at rest (:mod:`agentos.utils.crypto`).  Callers
receive decrypted :class:`~agentos.integrations.types.Credential` objects and
never touch ciphertext.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from agentos.core.interfaces import Repository
from agentos.integrations.oauth_providers import OAuthError
from agentos.integrations.oauth_providers import OAuthProviders
from agentos.integrations.types import AuthStatus
from agentos.integrations.types import Credential
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import TokenSet
from agentos.models.enums import IntegrationStatus
from agentos.models.models import IntegrationCredential
from agentos.utils.crypto import decrypt
from agentos.utils.crypto import encrypt
from agentos.utils.log import log
from agentos.utils.time import isoformat_z
from agentos.utils.time import to_naive_utc
from agentos.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, repository: Repository, providers: OAuthProviders):
        self._repo = repository
        self._providers = providers

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store(
        self,
        user_id: int,
        tool: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        scopes: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Credential:
        """Create or replace the credential for ``(user_id, tool)``."""

        row = self._repo.upsert_credential(
            user_id,
            tool,
            access_token=encrypt(access_token),
            refresh_token=encrypt(refresh_token) if refresh_token else None,
            expires_at=to_naive_utc(expires_at) if expires_at else None,
            scopes=list(scopes or []),
            status=IntegrationStatus.ACTIVE.value,
            extra=dict(metadata or {}),
        )
        logger.info("Stored %s credential for user %s", tool, user_id)
        return self._to_credential(row)

    def store_tokens(self, user_id: int, tool: str, tokens: TokenSet) -> Credential:
        return self.store(
            user_id,
            tool,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            scopes=tokens.scopes,
            metadata=tokens.metadata,
        )

    def disconnect(self, user_id: int, tool: str) -> bool:
        row = self._repo.get_credential(user_id, tool)
        if row is None:
            return False
        self._repo.update_credential(row, status=IntegrationStatus.REVOKED.value)
        logger.info("Revoked %s credential for user %s", tool, user_id)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, user_id: int, tool: str) -> Optional[Credential]:
        row = self._repo.get_credential(user_id, tool)
        if row is None:
            return None
        return self._to_credential(row)

    async def status(self, user_id: int, tool: str) -> AuthStatus:
        """Connection status, refreshing an expired access token when possible."""

        row = self._repo.get_credential(user_id, tool)
        if row is None:
            return AuthStatus(connected=False, error="Integration not found")

        if _status_of(row) in (IntegrationStatus.REVOKED.value, IntegrationStatus.ERROR.value):
            return AuthStatus(
                connected=False,
                expires_at=row.expires_at,
                error=f"Integration status: {_status_of(row)}",
                scopes=list(row.scopes or []),
            )

        if row.expires_at is not None and row.expires_at < utc_now_naive():
            try:
                await self._refresh_row(row)
            except (OAuthError, ValueError) as exc:
                self._repo.update_credential(row, status=IntegrationStatus.EXPIRED.value)
                log.warning("credential-refresh-failed", user_id=user_id, tool=tool, error=str(exc))
                return AuthStatus(
                    connected=False,
                    expires_at=row.expires_at,
                    error=f"Token expired and refresh failed: {exc}",
                    scopes=list(row.scopes or []),
                )

        status = _status_of(row)
        connected = status == IntegrationStatus.ACTIVE.value
        return AuthStatus(
            connected=connected,
            expires_at=row.expires_at,
            error=None if connected else f"Integration status: {status}",
            scopes=list(row.scopes or []),
        )

    async def refresh(self, user_id: int, tool: str) -> bool:
        row = self._repo.get_credential(user_id, tool)
        if row is None:
            return False
        try:
            await self._refresh_row(row)
        except (OAuthError, ValueError) as exc:
            log.warning("credential-refresh-failed", user_id=user_id, tool=tool, error=str(exc))
            return False
        return True

    async def statuses(self, user_id: int, tools: Iterable[PluginMetadata]) -> List[Dict[str, Any]]:
        """One status row per tool for the integrations page."""

        rows: List[Dict[str, Any]] = []
        for meta in tools:
            try:
                auth = await self.status(user_id, meta.id)
            except Exception:  # noqa: BLE001 – one broken row must not hide the rest
                logger.exception("Status check failed for %s", meta.id)
                rows.append({"tool": meta.id, "name": meta.id, "status": "error", "capabilities": {"actions": []}})
                continue

            stored = self._repo.get_credential(user_id, meta.id)
            actions = [name for names in meta.actions.values() for name in names]
            rows.append(
                {
                    "tool": meta.id,
                    "name": meta.name,
                    "status": "connected" if auth.connected else "disconnected",
                    "lastSynced": isoformat_z(stored.updated_at) if stored is not None else None,
                    "capabilities": {"actions": actions},
                }
            )
        return rows

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _refresh_row(self, row: IntegrationCredential) -> None:
        if not row.refresh_token:
            raise ValueError("No refresh token available")

        tokens = await self._providers.refresh_access_token(row.tool_name, decrypt(row.refresh_token))
        self._repo.update_credential(
            row,
            access_token=encrypt(tokens.access_token),
            refresh_token=encrypt(tokens.refresh_token) if tokens.refresh_token else row.refresh_token,
            expires_at=tokens.expires_at,
            scopes=tokens.scopes or list(row.scopes or []),
            status=IntegrationStatus.ACTIVE.value,
        )
        logger.info("Refreshed %s credential for user %s", row.tool_name, row.user_id)

    @staticmethod
    def _to_credential(row: IntegrationCredential) -> Credential:
        return Credential(
            user_id=row.user_id,
            tool=row.tool_name,
            access_token=decrypt(row.access_token),
            refresh_token=decrypt(row.refresh_token) if row.refresh_token else None,
            expires_at=row.expires_at,
            scopes=list(row.scopes or []),
            status=_status_of(row),
            metadata=dict(row.extra or {}),
        )


def _status_of(row: IntegrationCredential) -> str:
    return getattr(row.status, "value", row.status)


__all__ = ["CredentialStore"]
