"""Task Scheduler – persisted scheduled tasks and their state machine.

``scheduled → running → completed | failed``, ``scheduled → cancelled`` and
the manual ``failed → scheduled`` retry are the only transitions.  Every
transition is a conditional update in the repository, so a cancel racing a
claim (or two overlapping cron runs) can never both win.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from datetime import timedelta
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional

from agentos.core.interfaces import Repository
from agentos.integrations.types import PluginResult
from agentos.integrations.types import TaskIntent
from agentos.metrics import scheduled_tasks_processed_total
from agentos.metrics import task_claim_conflicts_total
from agentos.models.enums import TaskStatus
from agentos.models.models import ScheduledTask
from agentos.utils.log import log
from agentos.utils.time import isoformat_z
from agentos.utils.time import to_naive_utc
from agentos.utils.time import utc_now_naive

logger = logging.getLogger(__name__)

TaskExecutor = Callable[[TaskIntent], Awaitable[PluginResult]]

CLEANUP_BATCH_SIZE = 100


class TaskScheduler:
    def __init__(self, repository: Repository, batch_size: int = 20, clock: Callable[[], datetime] = utc_now_naive):
        self._repo = repository
        self._batch_size = batch_size
        self._now = clock

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_task(self, intent: TaskIntent) -> Dict[str, Any]:
        if not intent.agent_id or not intent.tool or not intent.intent or intent.scheduled_time is None:
            raise ValueError("Missing required fields: agentId, tool, intent, scheduledTime")

        task = self._repo.create_task(
            agent_id=str(intent.agent_id),
            user_id=intent.user_id,
            tool=intent.tool,
            intent=intent.intent,
            context=dict(intent.context or {}),
            scheduled_time=to_naive_utc(intent.scheduled_time),
            status=TaskStatus.SCHEDULED.value,
            attempts=0,
        )
        logger.info("Scheduled task %s (%s/%s) for %s", task.id, task.tool, task.intent, task.scheduled_time)
        return {"success": True, "task_id": task.id}

    def get_task(self, task_id: str) -> Optional[ScheduledTask]:
        return self._repo.get_task(task_id)

    def get_agent_tasks(
        self, agent_id: str, status: Optional[str] = None, limit: int = 10, user_id: Optional[int] = None
    ) -> List[ScheduledTask]:
        return self._repo.list_tasks(agent_id, status=status, limit=limit, user_id=user_id)

    def cancel_task(self, task_id: str) -> bool:
        return self._repo.transition_task(task_id, TaskStatus.SCHEDULED.value, TaskStatus.CANCELLED.value)

    def retry_task(self, task_id: str) -> bool:
        return self._repo.transition_task(
            task_id,
            TaskStatus.FAILED.value,
            TaskStatus.SCHEDULED.value,
            scheduled_time=self._now(),
            error=None,
            worker_token=None,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def process_due_tasks(self, executor: TaskExecutor) -> int:
        """Claim and run every due task; returns how many this call executed."""

        executed = 0
        seen: set[str] = set()

        while True:
            due = [task_id for task_id in self._repo.list_due_task_ids(self._now(), self._batch_size) if task_id not in seen]
            if not due:
                break

            for task_id in due:
                seen.add(task_id)
                worker_token = str(uuid.uuid4())
                if not self._repo.claim_task(task_id, worker_token):
                    task_claim_conflicts_total.inc()
                    log.info("task-claim-conflict", task_id=task_id)
                    continue

                task = self._repo.get_task(task_id)
                await self._run_claimed(task, worker_token, executor)
                executed += 1

        return executed

    async def _run_claimed(self, task: ScheduledTask, worker_token: str, executor: TaskExecutor) -> None:
        intent = TaskIntent(
            agent_id=task.agent_id,
            user_id=task.user_id,
            tool=task.tool,
            intent=task.intent,
            context=dict(task.context or {}),
        )
        try:
            result = await executor(intent)
        except Exception as exc:  # noqa: BLE001 – recorded on the task row
            logger.exception("Scheduled task %s raised", task.id)
            self._repo.finish_task(task.id, worker_token, TaskStatus.FAILED.value, error=str(exc))
            scheduled_tasks_processed_total.labels(outcome="failed").inc()
            return

        if result.success:
            self._repo.finish_task(task.id, worker_token, TaskStatus.COMPLETED.value, result=result.to_dict())
            scheduled_tasks_processed_total.labels(outcome="completed").inc()
        else:
            self._repo.finish_task(
                task.id,
                worker_token,
                TaskStatus.FAILED.value,
                result=result.to_dict(),
                error=result.message or "Task execution failed",
            )
            scheduled_tasks_processed_total.labels(outcome="failed").inc()

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def cleanup_completed_tasks(self, retention_days: int = 7) -> int:
        before = self._now() - timedelta(days=retention_days)
        deleted = self._repo.delete_finished_tasks(
            before, [TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value], batch_size=CLEANUP_BATCH_SIZE
        )
        if deleted:
            logger.info("Cleaned up %d finished tasks older than %s", deleted, before)
        return deleted


def task_to_dict(task: ScheduledTask) -> Dict[str, Any]:
    return {
        "id": task.id,
        "agentId": task.agent_id,
        "tool": task.tool,
        "intent": task.intent,
        "context": dict(task.context or {}),
        "scheduledTime": isoformat_z(task.scheduled_time),
        "status": getattr(task.status, "value", task.status),
        "attempts": task.attempts,
        "result": task.result,
        "error": task.error,
        "createdAt": isoformat_z(task.created_at),
        "updatedAt": isoformat_z(task.updated_at),
    }


__all__ = ["TaskScheduler", "TaskExecutor", "task_to_dict"]
