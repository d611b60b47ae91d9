"""Common behaviour for third-party tool adapters.

An adapter is stateless with respect to storage: the registry resolves the
caller's :class:`~agentos.integrations.types.Credential` and hands it to
:meth:`BaseAdapter.send` / :meth:`BaseAdapter.fetch`.  Subclasses declare
their actions in ``send_actions`` / ``fetch_actions`` (action name → method
name) and implement one coroutine per action.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from typing import Any
from typing import Dict
from typing import Optional

import httpx

from agentos.constants import HTTP_TIMEOUT
from agentos.integrations.types import AuthStatus
from agentos.integrations.types import Credential
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import PluginResult
from agentos.metrics import integration_http_latency_seconds

if TYPE_CHECKING:  # pragma: no cover
    from agentos.integrations.credentials import CredentialStore

logger = logging.getLogger(__name__)


class AdapterAPIError(Exception):
    """Non-2xx response (or provider-level failure) from a tool API."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class BaseAdapter:
    tool: str = ""
    display_name: str = ""
    metadata: PluginMetadata

    send_actions: Dict[str, str] = {}
    fetch_actions: Dict[str, str] = {}
    default_send_action: str = ""
    default_fetch_action: str = ""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    # ------------------------------------------------------------------
    # Connection helpers (delegate to the Credential Store)
    # ------------------------------------------------------------------

    async def connect(self, credentials: "CredentialStore", user_id: int) -> AuthStatus:
        status = await credentials.status(user_id, self.tool)
        if status.connected:
            return AuthStatus(connected=True, expires_at=status.expires_at, scopes=status.scopes)
        return AuthStatus(connected=False, error="Not connected")

    async def is_connected(self, credentials: "CredentialStore", user_id: int) -> bool:
        return (await credentials.status(user_id, self.tool)).connected

    async def disconnect(self, credentials: "CredentialStore", user_id: int) -> None:
        credentials.disconnect(user_id, self.tool)

    def get_metadata(self) -> PluginMetadata:
        return self.metadata

    # ------------------------------------------------------------------
    # Action dispatch
    # ------------------------------------------------------------------

    async def send(self, credential: Credential, payload: Optional[Dict[str, Any]] = None) -> PluginResult:
        payload = dict(payload or {})
        return await self._dispatch(self.send_actions, payload.get("action") or self.default_send_action, credential, payload)

    async def fetch(self, credential: Credential, query: Optional[Dict[str, Any]] = None) -> PluginResult:
        query = dict(query or {})
        return await self._dispatch(self.fetch_actions, query.get("action") or self.default_fetch_action, credential, query)

    async def _dispatch(
        self, table: Dict[str, str], action: str, credential: Credential, params: Dict[str, Any]
    ) -> PluginResult:
        handler_name = table.get(action)
        if handler_name is None:
            return PluginResult.failure(
                f"Unknown action: {action}", "UNKNOWN_ACTION", f"The action {action} is not supported"
            )
        try:
            return await getattr(self, handler_name)(credential, params)
        except (AdapterAPIError, httpx.HTTPError) as exc:
            return self.handle_api_error(exc)

    def handle_api_error(self, exc: Exception) -> PluginResult:
        logger.warning("%s API error: %s", self.display_name, exc)
        code = getattr(exc, "status_code", None)
        if code is None and isinstance(exc, httpx.HTTPStatusError):
            code = exc.response.status_code
        return PluginResult(
            success=False,
            message=f"{self.display_name} API error: {exc}",
            error={"code": str(code or 500), "message": str(exc), "details": getattr(exc, "details", None)},
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _headers(self, credential: Credential) -> Dict[str, str]:
        return {"Authorization": f"Bearer {credential.access_token}", "Accept": "application/json"}

    async def _request(self, credential: Credential, method: str, url: str, **kwargs: Any) -> Any:
        """Perform one API call and return the decoded JSON body (``None`` for 204)."""

        headers = {**self._headers(credential), **kwargs.pop("headers", {})}
        started = time.perf_counter()
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=self._transport) as client:
            response = await client.request(method, url, headers=headers, **kwargs)
        integration_http_latency_seconds.labels(tool=self.tool).observe(time.perf_counter() - started)

        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = response.text
            raise AdapterAPIError(
                f"{method} {url} returned {response.status_code}", status_code=response.status_code, details=details
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()


__all__ = ["AdapterAPIError", "BaseAdapter"]
