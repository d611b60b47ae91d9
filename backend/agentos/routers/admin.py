"""Admin-only routes."""

import logging
from typing import List
from typing import Optional

from fastapi import APIRouter
from fastapi import Depends

from agentos.core.factory import get_repository
from agentos.core.interfaces import Repository
from agentos.dependencies.auth import get_current_user
from agentos.dependencies.auth import require_admin
from agentos.schemas.schemas import DeadLetterOut
from agentos.utils.params import positive_int

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(get_current_user), Depends(require_admin)],
)

logger = logging.getLogger(__name__)


@router.get("/dead-letters", response_model=List[DeadLetterOut])
def list_dead_letters(
    kind: Optional[str] = None,
    limit: Optional[str] = None,
    repo: Repository = Depends(get_repository),
):
    """Writes that failed after the client response was sent, newest first."""
    return repo.list_dead_letters(kind=kind, limit=positive_int(limit, 100))
