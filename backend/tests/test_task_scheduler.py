"""Scheduled task state machine, claim/lease and cleanup."""

import asyncio
from datetime import datetime
from datetime import timedelta

import pytest

from agentos.integrations.types import PluginResult
from agentos.integrations.types import TaskIntent
from agentos.models.enums import TaskStatus
from agentos.services.task_scheduler import TaskScheduler
from agentos.services.task_scheduler import task_to_dict
from agentos.utils.time import utc_now_naive


def _schedule(scheduler, agent_id="a1", when=None, intent="send_email", **context):
    when = when or utc_now_naive() - timedelta(minutes=1)
    result = scheduler.schedule_task(
        TaskIntent(agent_id=agent_id, tool="gmail", intent=intent, context=context, scheduled_time=when)
    )
    return result["task_id"]


def _status(repository, task_id):
    task = repository.get_task(task_id)
    repository.db.refresh(task)
    return getattr(task.status, "value", task.status)


def test_schedule_task_persists_scheduled_row(repository):
    scheduler = TaskScheduler(repository)
    task_id = _schedule(scheduler, when=datetime(2024, 3, 20))

    tasks = scheduler.get_agent_tasks("a1")
    assert [t.id for t in tasks] == [task_id]
    assert tasks[0].status == TaskStatus.SCHEDULED
    assert tasks[0].attempts == 0

    data = task_to_dict(tasks[0])
    assert data["scheduledTime"] == "2024-03-20T00:00:00Z"
    assert data["status"] == "scheduled"


def test_schedule_task_requires_all_fields(repository):
    scheduler = TaskScheduler(repository)
    with pytest.raises(ValueError, match="Missing required fields"):
        scheduler.schedule_task(TaskIntent(agent_id="a1", tool="gmail", intent="send_email"))


def test_get_agent_tasks_orders_by_scheduled_time_and_filters(repository):
    scheduler = TaskScheduler(repository)
    later = _schedule(scheduler, when=datetime(2024, 5, 1))
    earlier = _schedule(scheduler, when=datetime(2024, 4, 1))
    _schedule(scheduler, agent_id="other", when=datetime(2024, 1, 1))
    scheduler.cancel_task(later)

    assert [t.id for t in scheduler.get_agent_tasks("a1")] == [earlier, later]
    assert [t.id for t in scheduler.get_agent_tasks("a1", status="cancelled")] == [later]
    assert len(scheduler.get_agent_tasks("a1", limit=1)) == 1


def test_cancel_only_from_scheduled(repository):
    scheduler = TaskScheduler(repository)
    task_id = _schedule(scheduler)

    assert scheduler.cancel_task(task_id) is True
    assert _status(repository, task_id) == "cancelled"

    # Second cancel is rejected and leaves the row alone
    before = repository.get_task(task_id).updated_at
    assert scheduler.cancel_task(task_id) is False
    assert _status(repository, task_id) == "cancelled"
    assert repository.get_task(task_id).updated_at == before


def test_cancel_unknown_task_returns_false(repository):
    assert TaskScheduler(repository).cancel_task("missing") is False


def test_retry_rejected_unless_failed(repository):
    scheduler = TaskScheduler(repository)
    task_id = _schedule(scheduler)

    assert scheduler.retry_task(task_id) is False
    task = repository.get_task(task_id)
    assert task.status == TaskStatus.SCHEDULED
    assert task.attempts == 0


@pytest.mark.asyncio
async def test_failed_task_can_be_retried(repository):
    scheduler = TaskScheduler(repository)
    task_id = _schedule(scheduler)

    async def failing(intent):
        return PluginResult(success=False, message="Gmail API error: boom")

    assert await scheduler.process_due_tasks(failing) == 1
    task = repository.get_task(task_id)
    repository.db.refresh(task)
    assert task.status == TaskStatus.FAILED
    assert task.error == "Gmail API error: boom"
    assert task.attempts == 1

    assert scheduler.retry_task(task_id) is True
    repository.db.refresh(task)
    assert task.status == TaskStatus.SCHEDULED
    assert task.error is None
    assert task.worker_token is None


@pytest.mark.asyncio
async def test_process_due_tasks_runs_only_due_tasks(repository):
    scheduler = TaskScheduler(repository)
    due = _schedule(scheduler, to="x@example.com")
    future = _schedule(scheduler, when=utc_now_naive() + timedelta(hours=1))
    seen = []

    async def executor(intent):
        seen.append(intent)
        return PluginResult(success=True, message="sent", external_id="m-1")

    assert await scheduler.process_due_tasks(executor) == 1
    assert len(seen) == 1
    assert seen[0].context == {"to": "x@example.com"}
    assert seen[0].intent == "send_email"

    assert _status(repository, due) == "completed"
    assert repository.get_task(due).result["externalId"] == "m-1"
    assert _status(repository, future) == "scheduled"


@pytest.mark.asyncio
async def test_executor_exception_marks_task_failed(repository):
    scheduler = TaskScheduler(repository)
    task_id = _schedule(scheduler)

    async def explode(intent):
        raise RuntimeError("adapter crashed")

    assert await scheduler.process_due_tasks(explode) == 1
    task = repository.get_task(task_id)
    repository.db.refresh(task)
    assert task.status == TaskStatus.FAILED
    assert task.error == "adapter crashed"


def test_claim_is_exclusive(repository):
    scheduler = TaskScheduler(repository)
    task_id = _schedule(scheduler)

    assert repository.claim_task(task_id, "worker-1") is True
    assert repository.claim_task(task_id, "worker-2") is False

    # Only the owning worker may record the outcome
    assert repository.finish_task(task_id, "worker-2", TaskStatus.COMPLETED.value) is False
    assert _status(repository, task_id) == "running"
    assert repository.finish_task(task_id, "worker-1", TaskStatus.COMPLETED.value) is True
    assert _status(repository, task_id) == "completed"


def test_cancel_loses_against_claim(repository):
    scheduler = TaskScheduler(repository)
    task_id = _schedule(scheduler)

    assert repository.claim_task(task_id, "worker-1") is True
    assert scheduler.cancel_task(task_id) is False
    assert _status(repository, task_id) == "running"


@pytest.mark.asyncio
async def test_overlapping_runs_execute_each_task_once(repository):
    first = TaskScheduler(repository, batch_size=10)
    second = TaskScheduler(repository, batch_size=10)
    ids = {_schedule(first, n=i) for i in range(4)}
    executed = []

    async def slow(intent):
        executed.append(intent.context["n"])
        await asyncio.sleep(0)
        return PluginResult(success=True, message="ok")

    counts = await asyncio.gather(first.process_due_tasks(slow), second.process_due_tasks(slow))

    assert sum(counts) == 4
    assert sorted(executed) == [0, 1, 2, 3]
    assert {_status(repository, task_id) for task_id in ids} == {"completed"}


def test_cleanup_removes_old_finished_tasks(repository):
    scheduler = TaskScheduler(repository)
    old_done = _schedule(scheduler)
    old_cancelled = _schedule(scheduler)
    recent_done = _schedule(scheduler)
    old_failed = _schedule(scheduler)

    repository.claim_task(old_done, "w")
    repository.finish_task(old_done, "w", TaskStatus.COMPLETED.value)
    scheduler.cancel_task(old_cancelled)
    repository.claim_task(recent_done, "w")
    repository.finish_task(recent_done, "w", TaskStatus.COMPLETED.value)
    repository.claim_task(old_failed, "w")
    repository.finish_task(old_failed, "w", TaskStatus.FAILED.value, error="x")

    stale = utc_now_naive() - timedelta(days=10)
    for task_id in (old_done, old_cancelled, old_failed):
        repository.get_task(task_id).updated_at = stale
    repository.db.commit()

    assert scheduler.cleanup_completed_tasks(retention_days=7) == 2
    assert repository.get_task(old_done) is None
    assert repository.get_task(old_cancelled) is None
    assert repository.get_task(recent_done) is not None
    assert repository.get_task(old_failed) is not None
