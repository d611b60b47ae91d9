"""Adapter action dispatch against faked provider APIs."""

import base64
import json
from email import message_from_bytes

import httpx
import pytest

from agentos.integrations.adapters.asana import AsanaAdapter
from agentos.integrations.adapters.gmail import GmailAdapter
from agentos.integrations.adapters.gmail import build_raw_message
from agentos.integrations.adapters.notion import NotionAdapter
from agentos.integrations.adapters.slack import SlackAdapter
from agentos.integrations.types import Credential


@pytest.fixture
def credential():
    return Credential(user_id=1, tool="test", access_token="token-abc")


def test_raw_message_is_rfc2822_base64url():
    raw = build_raw_message({"to": ["a@example.com", "b@example.com"], "subject": "Hi", "body": "Hello"})
    message = message_from_bytes(base64.urlsafe_b64decode(raw))

    assert message["To"] == "a@example.com, b@example.com"
    assert message["Subject"] == "Hi"
    assert "Hello" in message.get_payload()


@pytest.mark.asyncio
async def test_gmail_send_email(transport, fake_http, credential):
    captured = {}

    def send(request):
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "msg-1", "threadId": "th-1"})

    fake_http.add("POST", "https://gmail.googleapis.com/gmail/v1/users/me/messages/send", handler=send)

    result = await GmailAdapter(transport=transport).send(credential, {"to": "x@example.com", "subject": "s"})

    assert result.success is True
    assert result.external_id == "msg-1"
    assert result.metadata == {"threadId": "th-1"}
    assert captured["auth"] == "Bearer token-abc"
    assert "raw" in captured["body"]


@pytest.mark.asyncio
async def test_gmail_list_emails_is_default_fetch(transport, fake_http, credential):
    fake_http.add(
        "GET",
        "https://gmail.googleapis.com/gmail/v1/users/me/messages",
        json={"messages": [{"id": "1"}, {"id": "2"}], "resultSizeEstimate": 2},
    )

    result = await GmailAdapter(transport=transport).fetch(credential, {"query": "is:unread"})

    assert result.success is True
    assert result.data == [{"id": "1"}, {"id": "2"}]
    assert "q=is%3Aunread" in str(fake_http.requests[0].url)


@pytest.mark.asyncio
async def test_unknown_action(transport, credential):
    result = await GmailAdapter(transport=transport).send(credential, {"action": "teleport"})

    assert result.success is False
    assert result.message == "Unknown action: teleport"
    assert result.error["code"] == "UNKNOWN_ACTION"


@pytest.mark.asyncio
async def test_api_error_is_structured(transport, fake_http, credential):
    fake_http.add(
        "POST",
        "https://gmail.googleapis.com/gmail/v1/users/me/messages/send",
        status=403,
        json={"error": {"message": "insufficient scope"}},
    )

    result = await GmailAdapter(transport=transport).send(credential, {"to": "x@example.com"})

    assert result.success is False
    assert result.message.startswith("Gmail API error: ")
    assert result.error["code"] == "403"
    assert result.error["details"] == {"error": {"message": "insufficient scope"}}


@pytest.mark.asyncio
async def test_slack_ok_false_payload_is_failure(transport, fake_http, credential):
    fake_http.add("POST", "https://slack.com/api/chat.postMessage", json={"ok": False, "error": "channel_not_found"})

    result = await SlackAdapter(transport=transport).send(credential, {"channel": "#nope", "text": "hi"})

    assert result.success is False
    assert "channel_not_found" in result.message


@pytest.mark.asyncio
async def test_slack_send_message(transport, fake_http, credential):
    fake_http.add(
        "POST", "https://slack.com/api/chat.postMessage", json={"ok": True, "ts": "1700000000.1", "channel": "C1"}
    )

    result = await SlackAdapter(transport=transport).send(credential, {"channel": "C1", "text": "hello"})

    assert result.success is True
    assert result.external_id == "1700000000.1"


@pytest.mark.asyncio
async def test_notion_sends_version_header(transport, fake_http, credential):
    captured = {}

    def create(request):
        captured["version"] = request.headers.get("notion-version")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "page-1", "url": "https://notion.so/page-1"})

    fake_http.add("POST", "https://api.notion.com/v1/pages", handler=create)

    result = await NotionAdapter(transport=transport).send(
        credential, {"parent_id": "parent", "title": "Notes", "content": "First line"}
    )

    assert result.success is True
    assert result.external_id == "page-1"
    assert captured["version"] == "2022-06-28"
    assert captured["body"]["parent"] == {"page_id": "parent"}


@pytest.mark.asyncio
async def test_asana_create_task_requires_fields(transport, credential):
    result = await AsanaAdapter(transport=transport).send(credential, {"name": "No project"})

    assert result.success is False
    assert result.error["code"] == "MISSING_FIELDS"


@pytest.mark.asyncio
async def test_asana_create_task(transport, fake_http, credential):
    captured = {}

    def create(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={"data": {"gid": "123", "name": "Write docs"}})

    fake_http.add("POST", "https://app.asana.com/api/1.0/tasks", handler=create)

    result = await AsanaAdapter(transport=transport).send(
        credential, {"name": "Write docs", "project_id": "p-1", "due_on": "2024-04-01"}
    )

    assert result.success is True
    assert result.external_id == "123"
    assert captured["body"]["data"] == {"name": "Write docs", "due_on": "2024-04-01", "projects": ["p-1"]}


@pytest.mark.asyncio
async def test_asana_delete_task_handles_empty_body(transport, fake_http, credential):
    fake_http.add("DELETE", "https://app.asana.com/api/1.0/tasks/123", handler=lambda request: httpx.Response(204))

    result = await AsanaAdapter(transport=transport).send(credential, {"action": "delete_task", "task_id": "123"})

    assert result.success is True
    assert result.external_id == "123"
