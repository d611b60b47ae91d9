"""Plugin engine routes: run intents, manage scheduled tasks, cron entrypoint."""

import hmac
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Query
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse

from agentos.config import Settings
from agentos.core.factory import get_plugin_engine
from agentos.core.factory import get_registry
from agentos.core.factory import get_settings_dep
from agentos.core.factory import get_task_scheduler
from agentos.dependencies.auth import get_current_user
from agentos.integrations.registry import IntegrationRegistry
from agentos.integrations.types import TaskIntent
from agentos.models.enums import TaskStatus
from agentos.services.plugin_engine import PluginEngine
from agentos.services.task_scheduler import TaskScheduler
from agentos.services.task_scheduler import task_to_dict
from agentos.utils.params import positive_int
from agentos.utils.params import read_json_body
from agentos.utils.params import require_fields
from agentos.utils.time import isoformat_z
from agentos.utils.time import parse_iso_datetime
from agentos.utils.time import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(tags=["plugin-engine"])


def _parse_scheduled_time(raw) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid scheduledTime")


def _context(body) -> dict:
    context = body.get("context") or {}
    if not isinstance(context, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="'context' must be an object")
    return context


def _require_cron_secret(request: Request, settings: Settings) -> None:
    expected = settings.cron_secret_token
    header = request.headers.get("Authorization", "")
    supplied = header[len("Bearer ") :] if header.startswith("Bearer ") else ""
    if not expected or not supplied or not hmac.compare_digest(supplied, str(expected)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


@router.get("")
async def list_tools(
    current_user=Depends(get_current_user),
    engine: PluginEngine = Depends(get_plugin_engine),
):
    return {"tools": [meta.to_dict() for meta in engine.tools()]}


@router.post("")
async def process_intent(
    request: Request,
    current_user=Depends(get_current_user),
    engine: PluginEngine = Depends(get_plugin_engine),
):
    """Execute an intent now, or schedule it when ``scheduledTime`` is given."""

    body = await read_json_body(request)
    require_fields(body, ("agentId", "tool", "intent"), "Missing required fields: agentId, tool, intent")

    result = await engine.process_intent(
        TaskIntent(
            agent_id=str(body["agentId"]),
            user_id=current_user.id,
            tool=body["tool"],
            intent=body["intent"],
            context=_context(body),
            scheduled_time=_parse_scheduled_time(body.get("scheduledTime")),
        )
    )
    return JSONResponse(
        content=result.to_dict(),
        status_code=status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST,
    )


# ---------------------------------------------------------------------------
# Scheduled tasks
# ---------------------------------------------------------------------------


@router.post("/tasks/schedule")
async def schedule_task(
    request: Request,
    current_user=Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    body = await read_json_body(request)
    require_fields(
        body,
        ("agentId", "tool", "intent", "scheduledTime"),
        "Missing required fields: agentId, tool, intent, scheduledTime",
    )
    scheduled_time = _parse_scheduled_time(body["scheduledTime"])

    try:
        scheduled = scheduler.schedule_task(
            TaskIntent(
                agent_id=str(body["agentId"]),
                user_id=current_user.id,
                tool=body["tool"],
                intent=body["intent"],
                context=_context(body),
                scheduled_time=scheduled_time,
            )
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    return {
        "success": True,
        "message": "Task scheduled successfully",
        "taskId": scheduled["task_id"],
        "metadata": {
            "agentId": str(body["agentId"]),
            "tool": body["tool"],
            "intent": body["intent"],
            "scheduledTime": isoformat_z(scheduled_time),
        },
    }


@router.get("/tasks")
async def list_tasks(
    agent_id: Optional[str] = Query(None, alias="agentId"),
    task_status: Optional[str] = Query(None, alias="status"),
    limit: Optional[str] = None,
    current_user=Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    if not agent_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required parameter: agentId")
    if task_status and task_status not in {s.value for s in TaskStatus}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {task_status}")

    tasks = scheduler.get_agent_tasks(
        agent_id, status=task_status or None, limit=positive_int(limit, 10), user_id=current_user.id
    )
    return {"tasks": [task_to_dict(task) for task in tasks]}


def _owned_task_id(body, scheduler: TaskScheduler, current_user, not_found: str) -> str:
    require_fields(body, ("taskId",), "Missing required field: taskId")
    task = scheduler.get_task(str(body["taskId"]))
    if task is None or (task.user_id is not None and task.user_id != current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    return task.id


@router.delete("/tasks")
async def cancel_task(
    request: Request,
    current_user=Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    body = await read_json_body(request)
    message = "Task not found or already completed"
    task_id = _owned_task_id(body, scheduler, current_user, message)
    if not scheduler.cancel_task(task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
    return {"success": True, "message": "Task cancelled successfully", "taskId": task_id}


@router.post("/tasks")
async def retry_task(
    request: Request,
    current_user=Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    body = await read_json_body(request)
    message = "Task not found or not failed"
    task_id = _owned_task_id(body, scheduler, current_user, message)
    if not scheduler.retry_task(task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
    return {"success": True, "message": "Task scheduled for retry", "taskId": task_id}


# ---------------------------------------------------------------------------
# Cron entrypoint (shared secret, no user auth)
# ---------------------------------------------------------------------------


@router.post("/cron")
async def run_cron_job(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
    engine: PluginEngine = Depends(get_plugin_engine),
):
    _require_cron_secret(request, settings)
    body = await read_json_body(request)
    job = body.get("job")

    if job == "process_scheduled_tasks":
        processed = await scheduler.process_due_tasks(engine.execute_now)
        return {"success": True, "job": job, "processedTasks": processed}
    if job == "process_due_tasks":
        processed = await scheduler.process_due_tasks(engine.execute_now)
        return {"success": True, "job": job, "processedCount": processed}
    if job == "cleanup_completed_tasks":
        cleaned = scheduler.cleanup_completed_tasks(settings.task_retention_days)
        return {"success": True, "job": job, "cleanedUpTasks": cleaned}

    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown job type: {job}")


@router.get("/cron")
async def cron_health(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    registry: IntegrationRegistry = Depends(get_registry),
):
    _require_cron_secret(request, settings)
    return {
        "status": "healthy",
        "adapters": len(registry.list_adapters()),
        "timestamp": utc_now().isoformat(),
    }
