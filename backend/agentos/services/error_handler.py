"""Error Handler – adapter failure records, statistics and fallback messages.

Counts are computed from the ``error_records`` table (no side cache): the
"error count" of an agent/tool pair is the number of records created for it
during the last hour.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from datetime import timedelta
from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from agentos.constants import DEFAULT_RETRY_LIMIT
from agentos.constants import TOOL_DISABLE_THRESHOLD
from agentos.core.interfaces import Repository
from agentos.metrics import errors_logged_total
from agentos.models.models import ErrorRecord
from agentos.models.models import FallbackMessage
from agentos.utils.time import utc_now_naive

logger = logging.getLogger(__name__)

ERROR_COUNT_WINDOW = timedelta(hours=1)

DEFAULT_RETRY_LIMITS: Dict[str, int] = {"gmail": 3, "notion": 3, "slack": 3, "asana": 3}

DEFAULT_FALLBACK_MESSAGES: Dict[str, str] = {
    "gmail": "Unable to complete email action. The message has been saved as a draft.",
    "notion": "Unable to complete Notion action. Your content has been saved locally.",
    "slack": "Unable to send message to Slack. Please try again later.",
    "asana": "Unable to complete Asana task action. Your changes have been saved locally.",
}
GENERIC_FALLBACK_MESSAGE = "The agent encountered an issue while trying to complete this task."


class ErrorHandler:
    def __init__(self, repository: Repository, clock: Callable[[], datetime] = utc_now_naive):
        self._repo = repository
        self._now = clock

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log_error(
        self,
        tool: str,
        error_code: str,
        message: str,
        agent_id: Optional[str] = None,
        action: Optional[str] = None,
        payload: Any = None,
        user_id: Optional[int] = None,
    ) -> ErrorRecord:
        record = self._repo.create_error(
            tool=tool,
            error_code=error_code,
            message=message,
            agent_id=agent_id,
            action=action,
            payload=payload,
            user_id=user_id,
            created_at=self._now(),
        )
        errors_logged_total.labels(tool=tool).inc()
        logger.warning("Logged %s error for %s/%s: %s", error_code, agent_id, tool, message)
        return record

    def resolve_error(self, error_id: str) -> bool:
        if self._repo.get_error(error_id) is None:
            return False
        return self._repo.resolve_errors([error_id], self._now()) == 1

    def bulk_resolve_errors(self, error_ids: Iterable[str]) -> int:
        ids = [error_id for error_id in error_ids if error_id]
        if not ids:
            return 0
        return self._repo.resolve_errors(ids, self._now())

    # ------------------------------------------------------------------
    # Retry / disable policy
    # ------------------------------------------------------------------

    def get_error_count(self, agent_id: Optional[str], tool: str) -> int:
        return self._repo.count_errors(agent_id, tool, self._now() - ERROR_COUNT_WINDOW)

    def retry_limit(self, tool: str) -> int:
        return DEFAULT_RETRY_LIMITS.get(tool, DEFAULT_RETRY_LIMIT)

    def should_retry(self, agent_id: Optional[str], tool: str) -> bool:
        return self.get_error_count(agent_id, tool) < self.retry_limit(tool)

    def should_disable_tool(self, agent_id: Optional[str], tool: str) -> bool:
        return self.get_error_count(agent_id, tool) > TOOL_DISABLE_THRESHOLD

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_agent_errors(self, agent_id: str, limit: int = 10) -> List[ErrorRecord]:
        return self._repo.list_errors(agent_id, limit)

    def get_error_trends(self, days: int = 30, tool: Optional[str] = None) -> List[Dict[str, Any]]:
        """Daily error counts for the trailing *days* (today included), oldest first."""

        today = self._now().date()
        first_day = today - timedelta(days=days - 1)
        since = datetime.combine(first_day, datetime.min.time())

        per_day = Counter(record.created_at.date() for record in self._repo.errors_since(since, tool))
        return [
            {"date": day.isoformat(), "count": per_day.get(day, 0)}
            for day in (first_day + timedelta(days=offset) for offset in range(days))
        ]

    def get_error_stats_by_tool(self, days: int = 7) -> Dict[str, int]:
        since = self._now() - timedelta(days=days)
        return dict(Counter(record.tool for record in self._repo.errors_since(since)))

    def get_most_frequent_error_codes(self, limit: int = 5, days: int = 7) -> List[Dict[str, Any]]:
        since = self._now() - timedelta(days=days)
        counts = Counter(record.error_code for record in self._repo.errors_since(since))
        return [{"error_code": code, "count": count} for code, count in counts.most_common(limit)]

    # ------------------------------------------------------------------
    # Fallback messages
    # ------------------------------------------------------------------

    def get_fallback_message(self, tool: str, agent_id: Optional[str] = None) -> str:
        """Agent-specific message, then tool-wide, then the built-in default."""

        if agent_id:
            row = self._repo.get_fallback(tool, agent_id)
            if row is not None and row.message:
                return row.message

        row = self._repo.get_fallback(tool, None)
        if row is not None and row.message:
            return row.message

        return DEFAULT_FALLBACK_MESSAGES.get(tool, GENERIC_FALLBACK_MESSAGE)

    def set_fallback_message(
        self, tool: str, message: str, agent_id: Optional[str] = None, updated_by: Optional[str] = None
    ) -> FallbackMessage:
        if not message or not message.strip():
            raise ValueError("Fallback message must not be empty")
        return self._repo.upsert_fallback(tool, agent_id or None, message.strip(), updated_by)


__all__ = [
    "ErrorHandler",
    "DEFAULT_FALLBACK_MESSAGES",
    "GENERIC_FALLBACK_MESSAGE",
]
