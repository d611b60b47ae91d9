"""Context key ↔ external id mappings for agents."""

from typing import Any
from typing import Dict
from typing import Optional

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Query
from fastapi import Request
from fastapi import status

from agentos.core.factory import get_context_mapper
from agentos.dependencies.auth import get_current_user
from agentos.services.context_mapper import ContextMapper
from agentos.services.context_mapper import mapping_to_dict
from agentos.utils.params import read_json_body
from agentos.utils.params import require_fields
from agentos.utils.time import parse_iso_datetime

router = APIRouter(tags=["context-mappings"], dependencies=[Depends(get_current_user)])

MAPPING_FIELDS = ("agentId", "tool", "contextKey", "externalId")
KEY_FIELDS = ("agentId", "tool", "contextKey")


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _mapping_kwargs(item: Dict[str, Any]) -> Dict[str, Any]:
    expires_at = None
    if item.get("expiresAt"):
        try:
            expires_at = parse_iso_datetime(item["expiresAt"])
        except ValueError:
            raise _bad_request("Invalid expiresAt")

    return {
        "agent_id": str(item["agentId"]),
        "tool": item["tool"],
        "context_key": str(item["contextKey"]),
        "external_id": str(item["externalId"]),
        "expires_at": expires_at,
    }


def _non_empty_list(body: Dict[str, Any], field: str) -> list:
    items = body.get(field)
    if not isinstance(items, list) or not items:
        raise _bad_request(f"{field} must be a non-empty array")
    return items


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_mapping(request: Request, mapper: ContextMapper = Depends(get_context_mapper)):
    body = await read_json_body(request)
    require_fields(body, MAPPING_FIELDS, "Missing required fields: agentId, tool, contextKey, externalId")

    mapping = mapper.create_mapping(**_mapping_kwargs(body))
    return {"success": True, "mapping": mapping_to_dict(mapping)}


@router.get("")
async def get_mappings(
    agent_id: Optional[str] = Query(None, alias="agentId"),
    tool: Optional[str] = None,
    context_key: Optional[str] = Query(None, alias="contextKey"),
    mapper: ContextMapper = Depends(get_context_mapper),
):
    """One mapping when ``contextKey`` is given, otherwise every live mapping."""

    if not agent_id or not tool:
        raise _bad_request("Missing required parameters: agentId, tool")

    if context_key:
        external_id = mapper.get_external_id(agent_id, tool, context_key)
        if external_id is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")
        return {"agentId": agent_id, "tool": tool, "contextKey": context_key, "externalId": external_id}

    return {"mappings": [mapping_to_dict(m) for m in mapper.list_mappings(agent_id, tool)]}


@router.delete("")
async def delete_mapping(request: Request, mapper: ContextMapper = Depends(get_context_mapper)):
    body = await read_json_body(request)
    require_fields(body, KEY_FIELDS, "Missing required fields: agentId, tool, contextKey")

    if not mapper.delete_mapping(str(body["agentId"]), body["tool"], str(body["contextKey"])):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")
    return {"success": True}


@router.get("/lookup")
async def lookup_mapping(
    agent_id: Optional[str] = Query(None, alias="agentId"),
    tool: Optional[str] = None,
    context_key: Optional[str] = Query(None, alias="contextKey"),
    external_id: Optional[str] = Query(None, alias="externalId"),
    mapper: ContextMapper = Depends(get_context_mapper),
):
    """Resolve in either direction: ``contextKey`` → external id or ``externalId`` → context key."""

    if not agent_id or not tool:
        raise _bad_request("Missing required parameters: agentId, tool")
    if not context_key and not external_id:
        raise _bad_request("Either contextKey or externalId must be provided")

    if context_key:
        found = mapper.get_external_id(agent_id, tool, context_key)
        result = {"externalId": found}
    else:
        found = mapper.get_context_key(agent_id, tool, external_id)
        result = {"contextKey": found}

    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")
    return result


@router.post("/bulk")
async def bulk_upsert_mappings(request: Request, mapper: ContextMapper = Depends(get_context_mapper)):
    """Create or replace many mappings.  Every item is validated before any is written."""

    body = await read_json_body(request)
    items = _non_empty_list(body, "mappings")

    prepared = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or any(item.get(name) in (None, "") for name in MAPPING_FIELDS):
            raise _bad_request(f"Invalid mapping at index {index}: agentId, tool, contextKey, externalId are required")
        prepared.append(_mapping_kwargs(item))

    count = mapper.bulk_upsert_mappings(prepared)
    return {"success": True, "count": count, "message": f"Processed {count} mappings"}


@router.delete("/bulk")
async def bulk_delete_mappings(request: Request, mapper: ContextMapper = Depends(get_context_mapper)):
    body = await read_json_body(request)
    items = _non_empty_list(body, "keys")

    keys = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or any(item.get(name) in (None, "") for name in KEY_FIELDS):
            raise _bad_request(f"Invalid key at index {index}: agentId, tool, contextKey are required")
        keys.append((str(item["agentId"]), item["tool"], str(item["contextKey"])))

    count = mapper.bulk_delete_mappings(keys)
    return {"success": True, "count": count, "message": f"Deleted {count} of {len(keys)} mappings"}
