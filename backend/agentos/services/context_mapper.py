"""Context Mapper – agent context keys ↔ external tool ids.

Lets an agent refer to ``"project-123"`` while the Asana adapter works with
the matching task gid.  Expired mappings are treated as absent.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple

from agentos.core.interfaces import Repository
from agentos.models.models import ContextMapping
from agentos.utils.time import isoformat_z
from agentos.utils.time import to_naive_utc
from agentos.utils.time import utc_now_naive


class ContextMapper:
    def __init__(self, repository: Repository, clock: Callable[[], datetime] = utc_now_naive):
        self._repo = repository
        self._now = clock

    def _live(self, mapping: Optional[ContextMapping]) -> Optional[ContextMapping]:
        if mapping is None:
            return None
        if mapping.expires_at is not None and mapping.expires_at <= self._now():
            return None
        return mapping

    def create_mapping(
        self,
        agent_id: str,
        tool: str,
        context_key: str,
        external_id: str,
        expires_at: Optional[datetime] = None,
    ) -> ContextMapping:
        """Create the mapping, replacing the external id of an existing key."""

        expires_at = to_naive_utc(expires_at) if expires_at else None
        existing = self._repo.get_mapping(agent_id, tool, context_key)
        if existing is not None:
            return self._repo.update_mapping(existing, external_id=external_id, expires_at=expires_at)
        return self._repo.create_mapping(
            agent_id=agent_id,
            tool=tool,
            context_key=context_key,
            external_id=external_id,
            expires_at=expires_at,
        )

    def get_external_id(self, agent_id: str, tool: str, context_key: str) -> Optional[str]:
        mapping = self._live(self._repo.get_mapping(agent_id, tool, context_key))
        return mapping.external_id if mapping else None

    def get_context_key(self, agent_id: str, tool: str, external_id: str) -> Optional[str]:
        mapping = self._live(self._repo.get_mapping_by_external_id(agent_id, tool, external_id))
        return mapping.context_key if mapping else None

    def list_mappings(self, agent_id: str, tool: str) -> List[ContextMapping]:
        return [m for m in self._repo.list_mappings(agent_id, tool) if self._live(m) is not None]

    def delete_mapping(self, agent_id: str, tool: str, context_key: str) -> bool:
        return self._repo.delete_mapping(agent_id, tool, context_key)

    def bulk_upsert_mappings(self, mappings: Iterable[Dict[str, Any]]) -> int:
        """Create or replace each mapping; returns how many were written.

        Items use the keyword names of :meth:`create_mapping`.
        """

        count = 0
        for item in mappings:
            self.create_mapping(**item)
            count += 1
        return count

    def bulk_delete_mappings(self, keys: Iterable[Tuple[str, str, str]]) -> int:
        """Delete each ``(agent_id, tool, context_key)``; returns how many existed."""

        return sum(1 for agent_id, tool, context_key in keys if self.delete_mapping(agent_id, tool, context_key))


def mapping_to_dict(mapping: ContextMapping) -> Dict[str, Any]:
    return {
        "id": mapping.id,
        "agentId": mapping.agent_id,
        "tool": mapping.tool,
        "contextKey": mapping.context_key,
        "externalId": mapping.external_id,
        "expiresAt": isoformat_z(mapping.expires_at),
        "createdAt": isoformat_z(mapping.created_at),
    }


__all__ = ["ContextMapper", "mapping_to_dict"]
