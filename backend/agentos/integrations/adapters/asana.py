"""Asana adapter (Asana REST API 1.0).

Asana wraps request and response bodies in ``{"data": ...}``.
"""

from __future__ import annotations

from typing import Any
from typing import Dict

from agentos.integrations.adapters.base import BaseAdapter
from agentos.integrations.oauth_providers import PROVIDERS
from agentos.integrations.types import Credential
from agentos.integrations.types import PluginMetadata
from agentos.integrations.types import PluginResult

ASANA_API_BASE = "https://app.asana.com/api/1.0"

# payload key -> Asana task field
_TASK_FIELDS = {"name": "name", "notes": "notes", "due_on": "due_on", "assignee_id": "assignee", "completed": "completed"}


def _task_body(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {field: payload[key] for key, field in _TASK_FIELDS.items() if payload.get(key) is not None}


class AsanaAdapter(BaseAdapter):
    tool = "asana"
    display_name = "Asana"

    send_actions = {"create_task": "create_task", "update_task": "update_task", "delete_task": "delete_task"}
    fetch_actions = {
        "list_tasks": "list_tasks",
        "get_task": "get_task",
        "list_projects": "list_projects",
        "get_project": "get_project",
        "list_workspaces": "list_workspaces",
    }
    default_send_action = "create_task"
    default_fetch_action = "list_tasks"

    metadata = PluginMetadata(
        id="asana",
        name="Asana",
        description="Create and track tasks in Asana projects",
        scopes=list(PROVIDERS["asana"].scopes),
        config_schema={"project_id": "string", "name": "string", "notes": "string", "due_on": "YYYY-MM-DD"},
        actions={"send": list(send_actions), "fetch": list(fetch_actions)},
    )

    async def _data(self, credential: Credential, method: str, path: str, **kwargs: Any) -> Any:
        body = await self._request(credential, method, f"{ASANA_API_BASE}{path}", **kwargs)
        return (body or {}).get("data")

    # Send ---------------------------------------------------------------

    async def create_task(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        if not payload.get("name") or not payload.get("project_id"):
            return PluginResult.failure(
                "Missing required fields", "MISSING_FIELDS", "name and project_id are required"
            )

        body = _task_body(payload)
        body["projects"] = [payload["project_id"]]
        task = await self._data(credential, "POST", "/tasks", json={"data": body})
        return PluginResult(success=True, message="Task created successfully", data=task, external_id=task.get("gid"))

    async def update_task(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        task_id = payload.get("task_id")
        if not task_id:
            return PluginResult.failure("Missing task ID", "MISSING_TASK_ID", "task_id is required")

        task = await self._data(credential, "PUT", f"/tasks/{task_id}", json={"data": _task_body(payload)})
        return PluginResult(success=True, message="Task updated successfully", data=task, external_id=task_id)

    async def delete_task(self, credential: Credential, payload: Dict[str, Any]) -> PluginResult:
        task_id = payload.get("task_id")
        if not task_id:
            return PluginResult.failure("Missing task ID", "MISSING_TASK_ID", "task_id is required")

        await self._request(credential, "DELETE", f"{ASANA_API_BASE}/tasks/{task_id}")
        return PluginResult(success=True, message="Task deleted successfully", external_id=task_id)

    # Fetch --------------------------------------------------------------

    async def list_tasks(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        params: Dict[str, Any] = {"limit": query.get("limit", 50)}
        if query.get("project_id"):
            params["project"] = query["project_id"]
        elif query.get("workspace_id") and query.get("assignee_id"):
            params["workspace"] = query["workspace_id"]
            params["assignee"] = query["assignee_id"]
        else:
            return PluginResult.failure(
                "Missing required fields", "MISSING_FIELDS", "project_id or workspace_id with assignee_id is required"
            )
        if query.get("completed_since"):
            params["completed_since"] = query["completed_since"]

        tasks = await self._data(credential, "GET", "/tasks", params=params) or []
        return PluginResult(success=True, message=f"Found {len(tasks)} tasks", data=tasks)

    async def get_task(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        task_id = query.get("task_id")
        if not task_id:
            return PluginResult.failure("Missing task ID", "MISSING_TASK_ID", "task_id is required")

        task = await self._data(credential, "GET", f"/tasks/{task_id}")
        return PluginResult(success=True, message="Task retrieved", data=task, external_id=task_id)

    async def list_projects(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        params: Dict[str, Any] = {"limit": query.get("limit", 50)}
        if query.get("workspace_id"):
            params["workspace"] = query["workspace_id"]

        projects = await self._data(credential, "GET", "/projects", params=params) or []
        return PluginResult(success=True, message=f"Found {len(projects)} projects", data=projects)

    async def get_project(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        project_id = query.get("project_id")
        if not project_id:
            return PluginResult.failure("Missing project ID", "MISSING_PROJECT_ID", "project_id is required")

        project = await self._data(credential, "GET", f"/projects/{project_id}")
        return PluginResult(success=True, message="Project retrieved", data=project, external_id=project_id)

    async def list_workspaces(self, credential: Credential, query: Dict[str, Any]) -> PluginResult:
        workspaces = await self._data(credential, "GET", "/workspaces") or []
        return PluginResult(success=True, message=f"Found {len(workspaces)} workspaces", data=workspaces)
