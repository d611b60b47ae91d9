"""Slack adapter (Slack Web API).

Slack answers most failures with HTTP 200 and ``{"ok": false, "error": ...}``;
those are raised as :class:`AdapterAPIError` like any non-2xx response.
"""

from __future__ import annotations

from typing import Any
from typing import Dict

from agentos.integrations.adapters.base import AdapterAPIError
from agentos.integrations.adapters.base import BaseAdapter
from agentos.integrations.oauth_providers import PROVIDERS
from agentos.integrations.types import Credential
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import PluginResult
from agentos.utils.time import parse_iso_datetime

SLACK_API_BASE = "https://slack.com/api"


class SlackAdapter(BaseAdapter):
    tool = "slack"
    display_name = "Slack"

    send_actions = {
        "send_message": "send_message",
        "schedule_message": "schedule_message",
        "upload_file": "upload_file",
    }
    fetch_actions = {
        "list_channels": "list_channels",
        "channel_history": "channel_history",
        "list_users": "list_users",
        "user_info": "user_info",
    }
    default_send_action = "send_message"
    default_fetch_action = "list_channels"

    metadata = PluginMetadata(
        id="slack",
        name="Slack",
        description="Send messages and manage Slack workspaces",
        scopes=list(PROVIDERS["slack"].scopes),
        config_schema={"channel": "string", "text": "string"},
        actions={"send": list(send_actions), "fetch": list(fetch_actions)},
    )

    async def _call(self, credential: Credential, method: str, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        data = await self._request(credential, method, f"{SLACK_API_BASE}/{endpoint}", **kwargs)
        if not data or not data.get("ok"):
            error = (data or {}).get("error", "unknown_error")
            raise AdapterAPIError(f"Slack error: {error}", details=data)
        return data

    # Send ---------------------------------------------------------------

    async def send_message(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        if not payload.get("channel") or not (payload.get("text") or payload.get("blocks")):
            return PluginResult.failure("Missing required fields: channel, text", "INVALID_PAYLOAD")

        body = {"channel": payload["channel"], "text": payload.get("text", "")}
        for key in ("blocks", "thread_ts"):
            if payload.get(key):
                body[key] = payload[key]

        data = await self._call(credential, "POST", "chat.postMessage", json=body)
        return PluginResult(
            success=True,
            message="Message sent to Slack",
            data=data,
            external_id=data.get("ts"),
            metadata={"channel": data.get("channel")},
        )

    async def schedule_message(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        if not payload.get("channel") or not payload.get("text") or not payload.get("post_at"):
            return PluginResult.failure("Missing required fields: channel, text, post_at", "INVALID_PAYLOAD")

        post_at = payload["post_at"]
        if isinstance(post_at, str) and not post_at.isdigit():
            post_at = int(parse_iso_datetime(post_at).timestamp())

        body = {"channel": payload["channel"], "text": payload["text"], "post_at": int(post_at)}
        data = await self._call(credential, "POST", "chat.scheduleMessage", json=body)
        return PluginResult(
            success=True,
            message="Message scheduled in Slack",
            data=data,
            external_id=data.get("scheduled_message_id"),
            metadata={"post_at": data.get("post_at")},
        )

    async def upload_file(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        if not payload.get("content") or not payload.get("channels"):
            return PluginResult.failure("Missing required fields: channels, content", "INVALID_PAYLOAD")

        channels = payload["channels"]
        form = {
            "channels": ",".join(channels) if isinstance(channels, (list, tuple)) else channels,
            "content": payload["content"],
            "filename": payload.get("filename", "upload.txt"),
        }
        if payload.get("title"):
            form["title"] = payload["title"]

        data = await self._call(credential, "POST", "files.upload", data=form)
        return PluginResult(
            success=True,
            message="File uploaded to Slack",
            data=data.get("file"),
            external_id=(data.get("file") or {}).get("id"),
        )

    # Fetch --------------------------------------------------------------

    async def list_channels(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        params = {"limit": query.get("limit", 100), "types": query.get("types", "public_channel")}
        data = await self._call(credential, "GET", "conversations.list", params=params)
        channels = data.get("channels", [])
        return PluginResult(success=True, message=f"Found {len(channels)} channels", data=channels)

    async def channel_history(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        if not query.get("channel"):
            return PluginResult.failure("Missing required field: channel", "INVALID_PAYLOAD")

        params = {"channel": query["channel"], "limit": query.get("limit", 20)}
        data = await self._call(credential, "GET", "conversations.history", params=params)
        messages = data.get("messages", [])
        return PluginResult(success=True, message=f"Found {len(messages)} messages", data=messages)

    async def list_users(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        data = await self._call(credential, "GET", "users.list", params={"limit": query.get("limit", 100)})
        members = data.get("members", [])
        return PluginResult(success=True, message=f"Found {len(members)} users", data=members)

    async def user_info(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        if not query.get("user"):
            return PluginResult.failure("Missing required field: user", "INVALID_PAYLOAD")

        data = await self._call(credential, "GET", "users.info", params={"user": query["user"]})
        user = data.get("user") or {}
        return PluginResult(success=True, message="User retrieved", data=user, external_id=user.get("id"))
