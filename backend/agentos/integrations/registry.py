"""Integration Registry – tool name → adapter lookup and uniform execution.

One registry is built at application start (:func:`build_default_registry`)
and shared by every request; it holds no per-user state.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from typing import Dict
from typing import List
from typing import Optional

import httpx

from agentos.integrations.adapters.asana import AsanaAdapter
from agentos.integrations.adapters.base import BaseAdapter
from agentos.integrations.adapters.gmail import GmailAdapter
from agentos.integrations.adapters.notion import NotionAdapter
from agentos.integrations.adapters.slack import SlackAdapter
from agentos.integrations.types import IntegrationRequest
from agentos.integrations.types import IntegrationResponse
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import PluginResult
from agentos.metrics import integration_calls_total

if TYPE_CHECKING:  # pragma: no cover
    from agentos.integrations.credentials import CredentialStore

logger = logging.getLogger(__name__)

# Actions understood by :meth:`IntegrationRegistry.execute_integration`
SUPPORTED_ACTIONS = ("send", "fetch", "connect", "disconnect", "isConnected")


class IntegrationRegistry:
    def __init__(self):
        self._adapters: Dict[str, BaseAdapter] = {}

    def register(self, adapter: BaseAdapter) -> None:
        if adapter.tool in self._adapters:
            logger.warning("Replacing adapter for %s", adapter.tool)
        self._adapters[adapter.tool] = adapter

    def list_adapters(self) -> List[str]:
        return list(self._adapters)

    def get_adapter(self, tool: str) -> Optional[BaseAdapter]:
        return self._adapters.get(tool)

    def metadata(self) -> List[PluginMetadata]:
        return [adapter.get_metadata() for adapter in self._adapters.values()]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_integration(
        self, request: IntegrationRequest, credentials: "CredentialStore"
    ) -> IntegrationResponse:
        """Run *request* against the matching adapter.

        Never raises: unknown tools, missing credentials and adapter
        exceptions all come back as ``success=False`` responses.
        """

        started = time.perf_counter()
        tool, action = request.tool, request.action

        def _respond(success: bool, data=None, error: Optional[str] = None, **extra) -> IntegrationResponse:
            integration_calls_total.labels(tool=tool, action=action, outcome="success" if success else "failure").inc()
            metadata = {"tool": tool, "action": action, "execution_time_ms": int((time.perf_counter() - started) * 1000)}
            metadata.update(extra)
            return IntegrationResponse(success=success, data=data, error=error, metadata=metadata)

        adapter = self._adapters.get(tool)
        if adapter is None:
            return _respond(False, error=f"Tool '{tool}' not supported. Available tools: {', '.join(self._adapters)}")

        try:
            if action in ("send", "fetch"):
                status = await credentials.status(request.user_id, tool)
                credential = credentials.get(request.user_id, tool) if status.connected else None
                if credential is None:
                    return _respond(False, error=f"Authentication required for {tool}. {status.error or ''}".rstrip())

                params = dict(request.params or {})
                if action == "send":
                    result = await adapter.send(credential, params)
                else:
                    result = await adapter.fetch(credential, params)

            elif action == "connect":
                auth = await adapter.connect(credentials, request.user_id)
                result = PluginResult(
                    success=auth.connected,
                    message="Connected successfully" if auth.connected else "Connection failed",
                    data=auth.to_dict(),
                    error={"code": "CONNECTION_ERROR", "message": auth.error} if auth.error else None,
                )

            elif action == "disconnect":
                await adapter.disconnect(credentials, request.user_id)
                result = PluginResult(success=True, message="Disconnected successfully", data={"disconnected": True})

            elif action == "isConnected":
                connected = await adapter.is_connected(credentials, request.user_id)
                result = PluginResult(
                    success=True,
                    message=f"Connection status: {'connected' if connected else 'disconnected'}",
                    data={"connected": connected},
                )

            else:
                raise ValueError(f"Action '{action}' not supported for {tool}")

        except Exception as exc:  # noqa: BLE001 – reported to the caller, never re-raised
            logger.exception("Error executing %s on %s", action, tool)
            return _respond(False, error=f"Failed to execute {action} on {tool}: {exc}")

        extra = {"external_id": result.external_id} if result.external_id else {}
        if result.success:
            return _respond(True, data=result.data, **extra)
        error = (result.error or {}).get("message") or result.message
        return _respond(False, data=result.data, error=error, **extra)


def build_default_registry(transport: Optional[httpx.AsyncBaseTransport] = None) -> IntegrationRegistry:
    """Registry with the four first-party adapters."""

    registry = IntegrationRegistry()
    for adapter_cls in (GmailAdapter, SlackAdapter, NotionAdapter, AsanaAdapter):
        registry.register(adapter_cls(transport=transport))
    return registry


__all__ = ["IntegrationRegistry", "build_default_registry", "SUPPORTED_ACTIONS"]
