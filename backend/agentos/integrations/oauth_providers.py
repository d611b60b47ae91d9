"""OAuth 2.0 provider configuration and token endpoints for supported tools.

Implements the authorization-code flow for Gmail (Google), Slack, Notion and
Asana: authorize URL construction, code → token exchange, refresh and a cheap
"who am I" probe used by the *test connection* button.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import timedelta
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from urllib.parse import urlencode

import httpx

from agentos.config import Settings
from agentos.constants import API_PREFIX
from agentos.constants import HTTP_TIMEOUT
from agentos.constants import INTEGRATIONS_PREFIX
from agentos.integrations.types import TokenSet
from agentos.metrics import oauth_exchanges_total
from agentos.utils.time import utc_now_naive

logger = logging.getLogger(__name__)

# Slack and Notion hand out tokens without ``expires_in``
LONG_LIVED_TOKEN_TTL = timedelta(days=365)

NOTION_VERSION = "2022-06-28"


class OAuthError(Exception):
    """Token endpoint rejected the request or returned an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ProviderConfig:
    tool: str
    name: str
    description: str
    authorize_url: str
    token_url: str
    scopes: List[str] = field(default_factory=list)
    extra_authorize_params: Dict[str, str] = field(default_factory=dict)
    # Notion wants HTTP basic client auth and a JSON body
    basic_auth: bool = False


PROVIDERS: Dict[str, ProviderConfig] = {
    "gmail": ProviderConfig(
        tool="gmail",
        name="Gmail",
        description="Send and manage emails through Gmail",
        authorize_url="https://accounts.google.com/o/oauth2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=[
            "https://www.googleapis.com/auth/gmail.send",
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.modify",
        ],
        extra_authorize_params={"access_type": "offline", "prompt": "consent"},
    ),
    "slack": ProviderConfig(
        tool="slack",
        name="Slack",
        description="Send messages and manage Slack workspaces",
        authorize_url="https://slack.com/oauth/v2/authorize",
        token_url="https://slack.com/api/oauth.v2.access",
        scopes=["chat:write", "channels:read", "users:read", "files:write"],
    ),
    "notion": ProviderConfig(
        tool="notion",
        name="Notion",
        description="Create and manage Notion pages and databases",
        authorize_url="https://api.notion.com/v1/oauth/authorize",
        token_url="https://api.notion.com/v1/oauth/token",
        scopes=[],
        extra_authorize_params={"owner": "user"},
        basic_auth=True,
    ),
    "asana": ProviderConfig(
        tool="asana",
        name="Asana",
        description="Create and track tasks in Asana projects",
        authorize_url="https://app.asana.com/-/oauth_authorize",
        token_url="https://app.asana.com/-/oauth_token",
        scopes=["default"],
    ),
}

# (url, extra headers, json "ok" flag required)
_PROBES: Dict[str, tuple[str, Dict[str, str], bool]] = {
    "gmail": ("https://gmail.googleapis.com/gmail/v1/users/me/profile", {}, False),
    "slack": ("https://slack.com/api/auth.test", {}, True),
    "notion": ("https://api.notion.com/v1/users/me", {"Notion-Version": NOTION_VERSION}, False),
    "asana": ("https://app.asana.com/api/1.0/users/me", {}, False),
}


class OAuthProviders:
    """Per-tool OAuth client built from :class:`~agentos.config.Settings`.

    ``transport`` is forwarded to :class:`httpx.AsyncClient`; tests pass an
    :class:`httpx.MockTransport`.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._transport = transport

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def supports(self, tool: str) -> bool:
        return tool in PROVIDERS

    def get(self, tool: str) -> Optional[ProviderConfig]:
        return PROVIDERS.get(tool)

    @property
    def redirect_uri(self) -> str:
        return f"{self._settings.public_url}{API_PREFIX}{INTEGRATIONS_PREFIX}/oauth/callback"

    def _require(self, tool: str) -> ProviderConfig:
        config = PROVIDERS.get(tool)
        if config is None:
            raise OAuthError(f"Unsupported tool: {tool}")
        return config

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=self._transport)

    # ------------------------------------------------------------------
    # Authorization URL
    # ------------------------------------------------------------------

    def build_authorization_url(self, tool: str, state: str) -> str:
        config = self._require(tool)
        client_id, _ = self._settings.oauth_client(tool)
        params = {
            "client_id": client_id or "",
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(config.scopes),
            "state": state,
        }
        params.update(config.extra_authorize_params)
        return f"{config.authorize_url}?{urlencode(params)}"

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    async def exchange_code(self, tool: str, code: str) -> TokenSet:
        """Swap an authorization *code* for tokens."""

        data = {"grant_type": "authorization_code", "code": code, "redirect_uri": self.redirect_uri}
        return await self._token_request(tool, data, kind="exchange")

    async def refresh_access_token(self, tool: str, refresh_token: str) -> TokenSet:
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        tokens = await self._token_request(tool, data, kind="refresh")
        # Some providers do not rotate the refresh token
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token
        return tokens

    async def _token_request(self, tool: str, data: Dict[str, str], kind: str) -> TokenSet:
        config = self._require(tool)
        client_id, client_secret = self._settings.oauth_client(tool)
        if not client_id or not client_secret:
            oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="unconfigured").inc()
            raise OAuthError(f"OAuth client for {tool} is not configured")

        headers = {"Accept": "application/json"}
        try:
            async with self._client() as client:
                if config.basic_auth:
                    response = await client.post(
                        config.token_url,
                        json=data,
                        headers=headers,
                        auth=(client_id, client_secret),
                    )
                else:
                    response = await client.post(
                        config.token_url,
                        data={**data, "client_id": client_id, "client_secret": client_secret},
                        headers=headers,
                    )
        except httpx.HTTPError as exc:
            oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="network_error").inc()
            logger.exception("OAuth %s request to %s failed", kind, tool)
            raise OAuthError(f"Token request failed: {exc}") from exc

        if response.status_code >= 400:
            oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="rejected").inc()
            logger.warning("OAuth %s for %s rejected: %s %s", kind, tool, response.status_code, response.text)
            raise OAuthError(f"Token endpoint returned {response.status_code}", status_code=response.status_code)

        try:
            payload: Dict[str, Any] = response.json()
        except ValueError as exc:
            oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="rejected").inc()
            raise OAuthError("Token endpoint returned invalid JSON") from exc
        if not isinstance(payload, dict):
            oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="rejected").inc()
            raise OAuthError("Token endpoint returned invalid JSON")

        if payload.get("ok") is False or "error" in payload or not payload.get("access_token"):
            oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="rejected").inc()
            reason = payload.get("error_description") or payload.get("error") or "missing access_token"
            raise OAuthError(f"Token endpoint error: {reason}")

        try:
            tokens = _token_set(payload)
        except OAuthError:
            oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="rejected").inc()
            raise

        oauth_exchanges_total.labels(tool=tool, kind=kind, outcome="success").inc()
        return tokens

    # ------------------------------------------------------------------
    # Connection probe
    # ------------------------------------------------------------------

    async def test_connection(self, tool: str, access_token: str) -> Dict[str, Any]:
        """Call a cheap identity endpoint with *access_token*."""

        probe = _PROBES.get(tool)
        if probe is None:
            return {"success": False, "message": f"Unsupported tool: {tool}"}

        url, extra_headers, needs_ok = probe
        headers = {"Authorization": f"Bearer {access_token}", **extra_headers}
        name = PROVIDERS[tool].name

        try:
            async with self._client() as client:
                response = await client.get(url, headers=headers)
        except httpx.TimeoutException:
            return {"success": False, "message": f"{name} request timed out"}
        except httpx.HTTPError as exc:
            return {"success": False, "message": f"Could not reach {name}: {exc}"}

        if response.status_code == 401:
            return {"success": False, "message": f"{name} rejected the access token"}
        if response.status_code >= 400:
            return {"success": False, "message": f"{name} API returned {response.status_code}"}

        if needs_ok:
            try:
                body = response.json()
            except ValueError:
                return {"success": False, "message": f"{name} returned an invalid response"}
            if not isinstance(body, dict) or not body.get("ok"):
                error = body.get("error", "unknown") if isinstance(body, dict) else "unknown"
                return {"success": False, "message": f"{name} error: {error}"}

        return {"success": True, "message": f"Connected to {name}"}


def _token_set(payload: Dict[str, Any]) -> TokenSet:
    expires_in = payload.get("expires_in")
    if expires_in:
        try:
            expires_at = utc_now_naive() + timedelta(seconds=int(expires_in))
        except (TypeError, ValueError, OverflowError):
            raise OAuthError(f"Token endpoint returned invalid expires_in: {expires_in!r}")
    else:
        expires_at = utc_now_naive() + LONG_LIVED_TOKEN_TTL

    raw_scope = payload.get("scope") or ""
    scopes = [s for s in raw_scope.replace(",", " ").split() if s]

    metadata: Dict[str, Any] = {}
    for key in ("team", "workspace_id", "workspace_name", "bot_id", "data"):
        if key in payload:
            metadata[key] = payload[key]

    return TokenSet(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        expires_at=expires_at,
        scopes=scopes,
        metadata=metadata,
    )


__all__ = ["OAuthError", "OAuthProviders", "ProviderConfig", "PROVIDERS"]
