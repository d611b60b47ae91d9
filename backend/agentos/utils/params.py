"""Request parsing helpers shared by the routers."""

from __future__ import annotations

from typing import Any
from typing import Dict
from typing import Iterable
from typing import Optional

from fastapi import HTTPException
from fastapi import Request
from fastapi import status

from agentos.constants import MAX_PAGE_SIZE


async def read_json_body(request: Request) -> Dict[str, Any]:
    """Return the JSON object body or raise **400**."""

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be a JSON object")
    return body


def require_fields(body: Dict[str, Any], fields: Iterable[str], message: str) -> None:
    """Raise **400** with *message* when any of *fields* is missing or empty."""

    if any(body.get(name) in (None, "") for name in fields):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def positive_int(raw: Optional[str], default: int, maximum: int = MAX_PAGE_SIZE) -> int:
    """Parse a query parameter; non-numeric, non-positive or above *maximum* gives *default*."""

    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if 0 < value <= maximum else default


__all__ = ["read_json_body", "require_fields", "positive_int"]
