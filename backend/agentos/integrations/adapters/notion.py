"""Notion adapter (Notion public API)."""

from __future__ import annotations

from typing import Any
from typing import Dict
from typing import List

from agentos.integrations.adapters.base import BaseAdapter
from agentos.integrations.oauth_providers import NOTION_VERSION
from agentos.integrations.types import Credential
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import PluginResult

NOTION_API_BASE = "https://api.notion.com/v1"


def paragraph_blocks(text: str) -> List[Dict[str, Any]]:
    """Turn plain text into one paragraph block per non-empty line."""

    return [
        {
            "object": "block",
            "type": "paragraph",
            "paragraph": {"rich_text": [{"type": "text", "text": {"content": line}}]},
        }
        for line in text.splitlines()
        if line.strip()
    ]


def _children(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    if payload.get("children"):
        return payload["children"]
    if payload.get("content"):
        return paragraph_blocks(payload["content"])
    return []


class NotionAdapter(BaseAdapter):
    tool = "notion"
    display_name = "Notion"

    send_actions = {"create_page": "create_page", "update_page": "update_page", "append_block": "append_block"}
    fetch_actions = {
        "search": "search",
        "get_page": "get_page",
        "query_database": "query_database",
        "list_databases": "list_databases",
    }
    default_send_action = "create_page"
    default_fetch_action = "search"

    metadata = PluginMetadata(
        id="notion",
        name="Notion",
        description="Create and manage Notion pages and databases",
        scopes=[],
        config_schema={"parent_id": "string", "title": "string", "content": "string"},
        actions={"send": list(send_actions), "fetch": list(fetch_actions)},
    )

    def _headers(self, credential: Credential) -> Dict[str, str]:
        headers = super()._headers(credential)
        headers["Notion-Version"] = NOTION_VERSION
        return headers

    # Send ---------------------------------------------------------------

    async def create_page(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        parent_id = payload.get("parent_id")
        if not parent_id or not payload.get("title"):
            return PluginResult.failure("Missing required fields: parent_id, title", "INVALID_PAYLOAD")

        title = [{"type": "text", "text": {"content": payload["title"]}}]
        if payload.get("is_database_item"):
            parent = {"database_id": parent_id}
            properties = dict(payload.get("properties") or {})
            properties.setdefault(payload.get("title_property", "Name"), {"title": title})
        else:
            parent = {"page_id": parent_id}
            properties = {"title": {"title": title}}

        body: Dict[str, Any] = {"parent": parent, "properties": properties}
        children = _children(payload)
        if children:
            body["children"] = children

        data = await self._request(credential, "POST", f"{NOTION_API_BASE}/pages", json=body)
        return PluginResult(
            success=True,
            message="Page created in Notion",
            data=data,
            external_id=data.get("id"),
            metadata={"url": data.get("url")},
        )

    async def update_page(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        page_id = payload.get("page_id")
        if not page_id:
            return PluginResult.failure("Missing required field: page_id", "INVALID_PAYLOAD")

        body: Dict[str, Any] = {}
        if payload.get("properties"):
            body["properties"] = payload["properties"]
        if "archived" in payload:
            body["archived"] = bool(payload["archived"])

        data = await self._request(credential, "PATCH", f"{NOTION_API_BASE}/pages/{page_id}", json=body)
        return PluginResult(success=True, message="Page updated in Notion", data=data, external_id=data.get("id"))

    async def append_block(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        block_id = payload.get("block_id") or payload.get("page_id")
        children = _children(payload)
        if not block_id or not children:
            return PluginResult.failure("Missing required fields: block_id, content", "INVALID_PAYLOAD")

        data = await self._request(
            credential, "PATCH", f"{NOTION_API_BASE}/blocks/{block_id}/children", json={"children": children}
        )
        return PluginResult(
            success=True,
            message=f"Appended {len(children)} blocks",
            data=data.get("results", []),
            external_id=block_id,
        )

    # Fetch --------------------------------------------------------------

    async def search(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        body: Dict[str, Any] = {"page_size": query.get("page_size", 20)}
        if query.get("query"):
            body["query"] = query["query"]
        if query.get("filter"):
            body["filter"] = query["filter"]

        data = await self._request(credential, "POST", f"{NOTION_API_BASE}/search", json=body)
        results = data.get("results", [])
        return PluginResult(
            success=True,
            message=f"Found {len(results)} results",
            data=results,
            metadata={"has_more": data.get("has_more", False)},
        )

    async def get_page(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        page_id = query.get("page_id")
        if not page_id:
            return PluginResult.failure("Missing required field: page_id", "INVALID_PAYLOAD")

        data = await self._request(credential, "GET", f"{NOTION_API_BASE}/pages/{page_id}")
        return PluginResult(success=True, message="Page retrieved", data=data, external_id=data.get("id"))

    async def query_database(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        database_id = query.get("database_id")
        if not database_id:
            return PluginResult.failure("Missing required field: database_id", "INVALID_PAYLOAD")

        body: Dict[str, Any] = {"page_size": query.get("page_size", 50)}
        for key in ("filter", "sorts"):
            if query.get(key):
                body[key] = query[key]

        data = await self._request(credential, "POST", f"{NOTION_API_BASE}/databases/{database_id}/query", json=body)
        results = data.get("results", [])
        return PluginResult(success=True, message=f"Found {len(results)} entries", data=results)

    async def list_databases(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        body = {"filter": {"property": "object", "value": "database"}, "page_size": query.get("page_size", 50)}
        data = await self._request(credential, "POST", f"{NOTION_API_BASE}/search", json=body)
        results = data.get("results", [])
        return PluginResult(success=True, message=f"Found {len(results)} databases", data=results)
