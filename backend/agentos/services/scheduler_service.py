"""
In-process trigger for scheduled tool tasks.

The cron endpoint (``POST /api/plugin-engine/cron``) is the primary trigger.
When ``SCHEDULER_ENABLED`` is set this service runs the same jobs from an
APScheduler ``AsyncIOScheduler`` inside the API process:

- ``process_due_tasks`` every ``SCHEDULER_INTERVAL_SECONDS``
- ``cleanup_completed_tasks`` once a day

Each run opens its own database session.  Overlapping runs are harmless
because every task is claimed before it executes.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from agentos.core.factory import Services
from agentos.core.factory import build_plugin_engine
from agentos.core.implementations import SQLAlchemyRepository
from agentos.database import db_session
from agentos.services.task_scheduler import TaskScheduler

logger = logging.getLogger(__name__)

PROCESS_JOB_ID = "process_due_tasks"
CLEANUP_JOB_ID = "cleanup_completed_tasks"


class SchedulerService:
    """Periodic runner for the task scheduler jobs."""

    def __init__(self, services: Services, session_factory=None):
        self.scheduler = AsyncIOScheduler()
        self._initialized = False
        self.services = services
        # ``None`` → agentos.database.get_session_factory() on every run
        self.session_factory = session_factory

    async def start(self):
        """Register the jobs and start the scheduler if not already running."""
        if self._initialized:
            return

        settings = self.services.settings
        self.scheduler.add_job(
            self.process_due_tasks,
            IntervalTrigger(seconds=settings.scheduler_interval_seconds),
            id=PROCESS_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.cleanup_completed_tasks,
            CronTrigger(hour=3, minute=0),
            id=CLEANUP_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        self._initialized = True
        logger.info("Scheduler service started (interval=%ss)", settings.scheduler_interval_seconds)

    async def stop(self):
        """Shutdown the scheduler gracefully."""
        if self._initialized:
            self.scheduler.shutdown()
            self._initialized = False
            logger.info("Scheduler service stopped")

    async def process_due_tasks(self) -> int:
        """Claim and execute every due task; returns how many ran."""
        try:
            with db_session(self.session_factory) as db:
                repo = SQLAlchemyRepository(db)
                engine = build_plugin_engine(self.services, repo)
                scheduler = TaskScheduler(repo, batch_size=self.services.settings.task_batch_size)
                processed = await scheduler.process_due_tasks(engine.execute_now)
        except Exception as exc:  # noqa: BLE001 – keep the job alive for the next tick
            logger.error("Error processing due tasks: %s", exc)
            return 0

        if processed:
            logger.info("Processed %d scheduled tasks", processed)
        return processed

    async def cleanup_completed_tasks(self) -> int:
        """Delete finished tasks older than ``TASK_RETENTION_DAYS``."""
        try:
            with db_session(self.session_factory) as db:
                scheduler = TaskScheduler(SQLAlchemyRepository(db))
                return scheduler.cleanup_completed_tasks(self.services.settings.task_retention_days)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error cleaning up completed tasks: %s", exc)
            return 0


__all__ = ["SchedulerService"]
