"""Gmail adapter (Gmail REST API v1)."""

from __future__ import annotations

import base64
from email.message import EmailMessage
from typing import Any
from typing import Dict

from agentos.integrations.adapters.base import BaseAdapter
from agentos.integrations.oauth_providers import PROVIDERS
from agentos.integrations.types import Credential
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import PluginResult

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"


def build_raw_message(payload: Dict[str, Any]) -> str:
    """Render an RFC 2822 message and return it base64url encoded."""

    message = EmailMessage()
    message["To"] = _addresses(payload["to"])
    if payload.get("cc"):
        message["Cc"] = _addresses(payload["cc"])
    if payload.get("bcc"):
        message["Bcc"] = _addresses(payload["bcc"])
    if payload.get("from"):
        message["From"] = payload["from"]
    message["Subject"] = payload.get("subject", "")

    body = payload.get("body", "")
    if payload.get("html"):
        message.set_content(body, subtype="html")
    else:
        message.set_content(body)

    return base64.urlsafe_b64encode(message.as_bytes()).decode()


def _addresses(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(value)
    return str(value)


class GmailAdapter(BaseAdapter):
    tool = "gmail"
    display_name = "Gmail"

    send_actions = {"send_email": "send_email", "create_draft": "create_draft"}
    fetch_actions = {"list_emails": "list_emails", "get_email": "get_email", "list_labels": "list_labels"}
    default_send_action = "send_email"
    default_fetch_action = "list_emails"

    metadata = PluginMetadata(
        id="gmail",
        name="Gmail",
        description="Send and manage emails through Gmail",
        scopes=list(PROVIDERS["gmail"].scopes),
        config_schema={"to": "string | string[]", "subject": "string", "body": "string"},
        actions={"send": list(send_actions), "fetch": list(fetch_actions)},
    )

    # Send ---------------------------------------------------------------

    async def send_email(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        if not payload.get("to"):
            return PluginResult.failure("Missing required field: to", "INVALID_PAYLOAD")

        body = {"raw": build_raw_message(payload)}
        if payload.get("thread_id"):
            body["threadId"] = payload["thread_id"]

        data = await self._request(credential, "POST", f"{GMAIL_API_BASE}/messages/send", json=body)
        return PluginResult(
            success=True,
            message="Email sent successfully",
            data=data,
            external_id=data.get("id"),
            metadata={"threadId": data.get("threadId")},
        )

    async def create_draft(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        if not payload.get("to"):
            return PluginResult.failure("Missing required field: to", "INVALID_PAYLOAD")

        data = await self._request(
            credential, "POST", f"{GMAIL_API_BASE}/drafts", json={"message": {"raw": build_raw_message(payload)}}
        )
        return PluginResult(success=True, message="Draft created successfully", data=data, external_id=data.get("id"))

    # Fetch --------------------------------------------------------------

    async def list_emails(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        params: Dict[str, Any] = {"maxResults": query.get("max_results", 10)}
        if query.get("query"):
            params["q"] = query["query"]
        if query.get("label_ids"):
            params["labelIds"] = query["label_ids"]

        data = await self._request(credential, "GET", f"{GMAIL_API_BASE}/messages", params=params)
        messages = data.get("messages", [])
        return PluginResult(
            success=True,
            message=f"Found {len(messages)} emails",
            data=messages,
            metadata={"resultSizeEstimate": data.get("resultSizeEstimate", len(messages))},
        )

    async def get_email(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        message_id = query.get("id") or query.get("message_id")
        if not message_id:
            return PluginResult.failure("Missing required field: id", "INVALID_PAYLOAD")

        data = await self._request(
            credential, "GET", f"{GMAIL_API_BASE}/messages/{message_id}", params={"format": query.get("format", "full")}
        )
        return PluginResult(success=True, message="Email retrieved", data=data, external_id=data.get("id"))

    async def list_labels(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        data = await self._request(credential, "GET", f"{GMAIL_API_BASE}/labels")
        labels = data.get("labels", [])
        return PluginResult(success=True, message=f"Found {len(labels)} labels", data=labels)
