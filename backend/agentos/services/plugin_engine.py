"""Plugin Engine – turns an agent's intent into an adapter call.

An intent either runs now or is handed to the Task Scheduler when it carries
a ``scheduled_time``.  Failures are recorded with the Error Handler and the
caller gets the configured fallback message.
"""

from __future__ import annotations

import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from agentos.integrations.credentials import CredentialStore
from agentos.integrations.registry import IntegrationRegistry
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import PluginResult
from agentos.integrations.types import TaskIntent
from agentos.services.error_handler import ErrorHandler
from agentos.services.task_scheduler import TaskScheduler

logger = logging.getLogger(__name__)

FETCH_PREFIXES = ("fetch_", "get_", "list_", "search_")
SEND_PREFIXES = ("send_", "create_", "update_", "delete_", "post_")

# Generic intents that select the adapter's default action
_GENERIC_INTENTS = {"fetch", "send", "test_intent"}


def intent_kind(intent: str) -> Optional[str]:
    """Return ``"fetch"``, ``"send"`` or *None* for an intent name."""

    if intent == "fetch" or intent.startswith(FETCH_PREFIXES):
        return "fetch"
    if intent in ("send", "test_intent") or intent.startswith(SEND_PREFIXES):
        return "send"
    return None


class PluginEngine:
    def __init__(
        self,
        registry: IntegrationRegistry,
        credentials: CredentialStore,
        error_handler: ErrorHandler,
        scheduler: TaskScheduler,
    ):
        self._registry = registry
        self._credentials = credentials
        self._errors = error_handler
        self._scheduler = scheduler

    def tools(self) -> List[PluginMetadata]:
        return self._registry.metadata()

    async def process_intent(self, intent: TaskIntent) -> PluginResult:
        if intent.scheduled_time is not None:
            return self._schedule(intent)
        return await self.execute_now(intent)

    def _schedule(self, intent: TaskIntent) -> PluginResult:
        try:
            scheduled = self._scheduler.schedule_task(intent)
        except ValueError as exc:
            return PluginResult(success=False, message=f"Failed to schedule task: {exc}")

        task_id = scheduled["task_id"]
        return PluginResult(
            success=True,
            message=f"Task scheduled successfully with ID: {task_id}",
            data={"taskId": task_id, "scheduledTime": intent.scheduled_time.isoformat()},
            external_id=task_id,
        )

    async def execute_now(self, intent: TaskIntent) -> PluginResult:
        adapter = self._registry.get_adapter(intent.tool)
        if adapter is None:
            return PluginResult(success=False, message=f"No adapter found for tool: {intent.tool}")

        if self._errors.should_disable_tool(intent.agent_id, intent.tool):
            fallback = self._errors.get_fallback_message(intent.tool, intent.agent_id)
            return PluginResult(
                success=False,
                message=f"Tool {intent.tool} is currently disabled due to excessive errors. {fallback}",
            )

        kind = intent_kind(intent.intent)
        if kind is None:
            return PluginResult(success=False, message=f"Unsupported action: {intent.intent}")

        credential = None
        if intent.user_id is not None:
            status = await self._credentials.status(intent.user_id, intent.tool)
            if status.connected:
                credential = self._credentials.get(intent.user_id, intent.tool)
        if credential is None:
            return PluginResult.failure(
                f"{adapter.display_name} is not connected",
                "NOT_CONNECTED",
                f"Please connect {adapter.display_name} before using it",
            )

        params: Dict[str, Any] = dict(intent.context or {})
        if not params.get("action") and intent.intent not in _GENERIC_INTENTS:
            params["action"] = intent.intent

        try:
            if kind == "fetch":
                result = await adapter.fetch(credential, params)
            else:
                result = await adapter.send(credential, params)
        except Exception as exc:  # noqa: BLE001 – converted into a fallback result
            logger.exception("Error processing intent for %s", intent.tool)
            return self._failed(intent, type(exc).__name__, str(exc))

        if not result.success:
            code = str((result.error or {}).get("code") or "ADAPTER_ERROR")
            detail = (result.error or {}).get("message") or result.message or "Unknown error"
            failed = self._failed(intent, code, detail)
            failed.error = result.error
            failed.data = result.data
            return failed

        return result

    def _failed(self, intent: TaskIntent, error_code: str, message: str) -> PluginResult:
        self._errors.log_error(
            tool=intent.tool,
            error_code=error_code,
            message=message,
            agent_id=intent.agent_id,
            action=intent.intent,
            payload=intent.context,
            user_id=intent.user_id,
        )
        fallback = self._errors.get_fallback_message(intent.tool, intent.agent_id)
        return PluginResult(
            success=False,
            message=f"Error processing intent: {message}. {fallback}",
            error={"code": error_code, "message": message},
        )


__all__ = ["PluginEngine", "intent_kind"]
