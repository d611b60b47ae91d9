"""Error records, statistics and fallback messages for the plugin engine."""

import logging
from datetime import timedelta
from typing import Any
from typing import Dict
from typing import Optional

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Query
from fastapi import Request
from fastapi import status

from agentos.constants import MAX_WINDOW_DAYS
from agentos.core.factory import get_error_handler
from agentos.dependencies.auth import get_current_user
from agentos.models.models import ErrorRecord
from agentos.services.error_handler import ErrorHandler
from agentos.utils.params import positive_int
from agentos.utils.params import read_json_body
from agentos.utils.params import require_fields
from agentos.utils.time import isoformat_z
from agentos.utils.time import utc_now_naive

logger = logging.getLogger(__name__)

router = APIRouter(tags=["errors"], dependencies=[Depends(get_current_user)])

DEFAULT_ERROR_LIMIT = 10
DEFAULT_STATS_DAYS = 7
DEFAULT_TREND_DAYS = 30
BULK_ACTIONS = ("resolve",)


def _error_to_dict(record: ErrorRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "agentId": record.agent_id,
        "tool": record.tool,
        "action": record.action,
        "errorCode": record.error_code,
        "errorMessage": record.message,
        "payload": record.payload,
        "createdAt": isoformat_z(record.created_at),
        "resolved": bool(record.resolved),
        "resolvedAt": isoformat_z(record.resolved_at),
    }


@router.get("")
async def list_errors(
    agent_id: Optional[str] = Query(None, alias="agentId"),
    limit: Optional[str] = None,
    errors: ErrorHandler = Depends(get_error_handler),
):
    if not agent_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required parameter: agentId")
    records = errors.get_agent_errors(agent_id, positive_int(limit, DEFAULT_ERROR_LIMIT))
    return {"errors": [_error_to_dict(record) for record in records]}


@router.post("")
async def log_error(
    request: Request,
    current_user=Depends(get_current_user),
    errors: ErrorHandler = Depends(get_error_handler),
):
    body = await read_json_body(request)
    require_fields(
        body,
        ("agentId", "tool", "action", "errorCode", "errorMessage"),
        "Missing required fields: agentId, tool, action, errorCode, errorMessage",
    )

    record = errors.log_error(
        tool=body["tool"],
        error_code=str(body["errorCode"]),
        message=str(body["errorMessage"]),
        agent_id=str(body["agentId"]),
        action=body["action"],
        payload=body.get("payload"),
        user_id=current_user.id,
    )
    return {
        "success": True,
        "errorId": record.id,
        "fallbackMessage": errors.get_fallback_message(body["tool"], str(body["agentId"])),
    }


@router.patch("")
async def resolve_error(request: Request, errors: ErrorHandler = Depends(get_error_handler)):
    body = await read_json_body(request)
    require_fields(body, ("errorId",), "Missing required field: errorId")

    if not errors.resolve_error(str(body["errorId"])):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Error not found")
    return {"success": True, "errorId": body["errorId"]}


@router.get("/stats")
async def error_stats(days: Optional[str] = None, errors: ErrorHandler = Depends(get_error_handler)):
    window = positive_int(days, DEFAULT_STATS_DAYS, maximum=MAX_WINDOW_DAYS)
    end = utc_now_naive()
    return {
        "stats": errors.get_error_stats_by_tool(window),
        "topErrorCodes": errors.get_most_frequent_error_codes(days=window),
        "period": {
            "days": window,
            "start": isoformat_z(end - timedelta(days=window)),
            "end": isoformat_z(end),
        },
    }


@router.get("/trends")
async def error_trends(
    days: Optional[str] = None,
    tool: Optional[str] = None,
    errors: ErrorHandler = Depends(get_error_handler),
):
    window = positive_int(days, DEFAULT_TREND_DAYS, maximum=MAX_WINDOW_DAYS)
    return {
        "trends": errors.get_error_trends(window, tool or None),
        "statsByTool": errors.get_error_stats_by_tool(window),
    }


# ---------------------------------------------------------------------------
# Fallback messages
# ---------------------------------------------------------------------------


@router.get("/fallbacks")
async def get_fallback(
    tool: Optional[str] = None,
    agent_id: Optional[str] = Query(None, alias="agentId"),
    errors: ErrorHandler = Depends(get_error_handler),
):
    if not tool:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required parameter: tool")
    return {"tool": tool, "agentId": agent_id, "message": errors.get_fallback_message(tool, agent_id)}


@router.post("/fallbacks")
async def set_fallback(
    request: Request,
    current_user=Depends(get_current_user),
    errors: ErrorHandler = Depends(get_error_handler),
):
    body = await read_json_body(request)
    require_fields(body, ("tool", "message"), "Missing required fields: tool, message")

    agent_id = str(body["agentId"]) if body.get("agentId") else None
    try:
        row = errors.set_fallback_message(body["tool"], str(body["message"]), agent_id, updated_by=current_user.email)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return {"success": True, "tool": row.tool, "agentId": row.agent_id, "message": row.message}


@router.post("/bulk")
async def bulk_action(request: Request, errors: ErrorHandler = Depends(get_error_handler)):
    body = await read_json_body(request)
    action = body.get("action")
    error_ids = body.get("errorIds")

    if action not in BULK_ACTIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported action: {action}")
    if not isinstance(error_ids, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="errorIds must be a list")

    count = errors.bulk_resolve_errors(str(error_id) for error_id in error_ids)
    return {"success": True, "action": action, "count": count, "errorIds": error_ids}
