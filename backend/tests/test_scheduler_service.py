from datetime import timedelta

import pytest

from agentos.integrations.types import TaskIntent
from agentos.models.enums import TaskStatus
from agentos.services.scheduler_service import CLEANUP_JOB_ID
from agentos.services.scheduler_service import PROCESS_JOB_ID
from agentos.services.scheduler_service import SchedulerService
from agentos.services.task_scheduler import TaskScheduler
from agentos.utils.time import utc_now_naive


def _due_task(repository, user, tool="slack", context=None):
    scheduler = TaskScheduler(repository)
    return scheduler.schedule_task(
        TaskIntent(
            agent_id="a1",
            tool=tool,
            intent="send_message",
            user_id=user.id,
            context=context or {"channel": "C1", "text": "hi"},
            scheduled_time=utc_now_naive() - timedelta(minutes=5),
        )
    )["task_id"]


@pytest.mark.asyncio
async def test_start_registers_jobs(services):
    service = SchedulerService(services)
    await service.start()
    try:
        assert service.scheduler.get_job(PROCESS_JOB_ID) is not None
        assert service.scheduler.get_job(CLEANUP_JOB_ID) is not None
        # Idempotent
        await service.start()
        assert len(service.scheduler.get_jobs()) == 2
    finally:
        await service.stop()


@pytest.mark.asyncio
async def test_process_due_tasks_runs_through_plugin_engine(
    services, repository, test_user, connect_tool, fake_http
):
    connect_tool(test_user, "slack")
    fake_http.add("POST", "https://slack.com/api/chat.postMessage", json={"ok": True, "ts": "5.0", "channel": "C1"})
    task_id = _due_task(repository, test_user)

    processed = await SchedulerService(services).process_due_tasks()

    assert processed == 1
    task = repository.get_task(task_id)
    repository.db.refresh(task)
    assert task.status == TaskStatus.COMPLETED
    assert task.result["externalId"] == "5.0"


@pytest.mark.asyncio
async def test_failed_execution_is_recorded(services, repository, test_user):
    task_id = _due_task(repository, test_user, tool="notion")

    assert await SchedulerService(services).process_due_tasks() == 1

    task = repository.get_task(task_id)
    repository.db.refresh(task)
    assert task.status == TaskStatus.FAILED
    assert task.error == "Notion is not connected"


@pytest.mark.asyncio
async def test_job_errors_are_contained(services):
    def broken_factory():
        raise RuntimeError("database down")

    service = SchedulerService(services, session_factory=broken_factory)

    assert await service.process_due_tasks() == 0
    assert await service.cleanup_completed_tasks() == 0
