# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
import logging

import pytest

from status_sync.tasks.task_models import TaskPriority, TaskStatus
from status_sync.tasks.task_scheduler import SyncScheduler, create_sync_scheduler

from .fakes import FakeSyncService, fast_config, wait_until


@pytest.mark.asyncio
async def test_priority_then_concurrency_cap() -> None:
    svc = FakeSyncService(gated=True)
    scheduler = SyncScheduler(svc, fast_config(max_concurrent_tasks=2))

    a = scheduler.add_task(["a"], priority="low")
    scheduler.add_task(["b"], priority="medium")
    scheduler.add_task(["c"], priority="high")

    scheduler.start()
    await wait_until(lambda: len(svc.calls) == 2)

    assert svc.keys() == ["c", "b"]
    await asyncio.sleep(0.05)
    assert len(svc.calls) == 2, "A must wait for a free slot"
    assert scheduler.get_task_status(a) == TaskStatus.PENDING

    svc.release("c")
    await wait_until(lambda: len(svc.calls) == 3)
    assert svc.keys()[2] == "a"

    svc.release_all()
    await wait_until(lambda: scheduler.get_queue_stats().completed == 3)
    await scheduler.stop()

    assert svc.max_active == 2


@pytest.mark.asyncio
async def test_fifo_within_priority_tier() -> None:
    svc = FakeSyncService()
    scheduler = SyncScheduler(svc, fast_config(max_concurrent_tasks=1))

    for key in ("m1", "m2", "m3"):
        scheduler.add_task([key], priority=TaskPriority.MEDIUM)
    scheduler.add_task(["l1"], priority=TaskPriority.LOW)
    scheduler.add_task(["h1"], priority=TaskPriority.HIGH)

    scheduler.start()
    await wait_until(lambda: scheduler.get_queue_stats().completed == 5)
    await scheduler.stop()

    assert svc.keys() == ["h1", "m1", "m2", "m3", "l1"]


@pytest.mark.asyncio
async def test_in_flight_never_exceeds_cap() -> None:
    svc = FakeSyncService(delay=0.01)
    scheduler = SyncScheduler(svc, fast_config(max_concurrent_tasks=3))
    violations: list[int] = []

    def check(_targets: list[str]) -> None:
        n = len(scheduler.running_tasks())
        if n > 3:
            violations.append(n)

    svc.on_call = check
    ids = [scheduler.add_task([f"app-{i}"]) for i in range(12)]

    scheduler.start()
    await wait_until(lambda: scheduler.get_queue_stats().completed == 12)
    await scheduler.stop()

    assert violations == []
    assert svc.max_active <= 3
    # every task ran exactly once
    assert sorted(svc.keys()) == sorted(f"app-{i}" for i in range(12))
    assert all(scheduler.get_task_status(t) == TaskStatus.COMPLETED for t in ids)


@pytest.mark.asyncio
async def test_retries_until_exhausted_then_failed() -> None:
    svc = FakeSyncService(fail_with="boom")
    scheduler = SyncScheduler(svc, fast_config(max_retries=2, retry_delay_seconds=0.05))
    seen_retry_counts: list[int] = []

    svc.on_call = lambda _t: seen_retry_counts.extend(t.retry_count for t in scheduler.running_tasks())

    task_id = scheduler.add_task(["app-1"], priority="high")
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.FAILED)
    await scheduler.stop()

    assert len(svc.calls) == 3
    assert seen_retry_counts == [0, 1, 2]

    result = scheduler.get_task_result(task_id)
    assert result is not None
    assert result.status == TaskStatus.FAILED
    assert result.error == "boom"
    assert result.successful == 0
    assert result.failed == 0
    assert scheduler.get_queue_stats().failed == 1


@pytest.mark.asyncio
async def test_timeout_counts_as_failed_attempt() -> None:
    svc = FakeSyncService(hang=True)
    scheduler = SyncScheduler(
        svc,
        fast_config(task_timeout_seconds=0.05, max_retries=1, retry_delay_seconds=0.01),
    )

    task_id = scheduler.add_task(["slow"])
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.FAILED)
    await scheduler.stop()

    assert len(svc.calls) == 2
    result = scheduler.get_task_result(task_id)
    assert result is not None
    assert "timed out" in (result.error or "")


@pytest.mark.asyncio
async def test_timeout_error_from_service_keeps_its_message() -> None:
    svc = FakeSyncService(fail_with=TimeoutError("upstream gateway 504"))
    scheduler = SyncScheduler(svc, fast_config(task_timeout_seconds=5.0, max_retries=0))

    task_id = scheduler.add_task(["app-1"])
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.FAILED)
    await scheduler.stop()

    result = scheduler.get_task_result(task_id)
    assert result is not None
    assert result.error == "upstream gateway 504"


@pytest.mark.asyncio
async def test_mapping_outcome_is_counted() -> None:
    svc = FakeSyncService(returns={"successful": 2, "failed": 1})
    scheduler = SyncScheduler(svc, fast_config())

    task_id = scheduler.add_task(["a", "b", "c"])
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.COMPLETED)
    await scheduler.stop()

    result = scheduler.get_task_result(task_id)
    assert result is not None
    assert (result.successful, result.failed) == (2, 1)


@pytest.mark.asyncio
async def test_unexpected_outcome_type_is_a_failed_attempt() -> None:
    svc = FakeSyncService(returns="ok")
    scheduler = SyncScheduler(svc, fast_config(max_retries=1))

    task_id = scheduler.add_task(["app-1"])
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.FAILED)
    await scheduler.stop()

    assert len(svc.calls) == 2
    result = scheduler.get_task_result(task_id)
    assert result is not None
    assert result.error == "Sync service returned str, expected SyncOutcome"


def _locations(scheduler: SyncScheduler, task_id: str) -> list[str]:
    found = []
    if any(t.id == task_id for t in scheduler.pending_tasks()):
        found.append("queue")
    if any(t.id == task_id for t in scheduler.running_tasks()):
        found.append("in-flight")
    if any(r.task_id == task_id for r in scheduler.get_all_results()):
        found.append("results")
    return found


@pytest.mark.asyncio
async def test_task_is_in_exactly_one_place_through_retry() -> None:
    svc = FakeSyncService(failures={"app-1": 1})
    scheduler = SyncScheduler(svc, fast_config(max_concurrent_tasks=1, retry_delay_seconds=0.3))

    task_id = scheduler.add_task(["app-1"])
    assert _locations(scheduler, task_id) == ["queue"]

    scheduler.start()
    await wait_until(lambda: len(svc.calls) == 1)
    await asyncio.sleep(0.02)

    # first attempt failed; waiting out the retry delay still holds the slot
    assert _locations(scheduler, task_id) == ["in-flight"]
    assert scheduler.get_task_status(task_id) == TaskStatus.RUNNING
    assert scheduler.get_task_result(task_id) is None

    # keep the re-queued attempt from being dispatched
    assert scheduler.pause() is True
    await wait_until(lambda: "in-flight" not in _locations(scheduler, task_id))
    assert _locations(scheduler, task_id) == ["queue"]
    task = scheduler.get_task(task_id)
    assert task is not None
    assert task.retry_count == 1

    assert scheduler.resume() is True
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.COMPLETED)
    await scheduler.stop()

    assert _locations(scheduler, task_id) == ["results"]
    assert len(svc.calls) == 2


@pytest.mark.asyncio
async def test_success_records_counts() -> None:
    svc = FakeSyncService()
    scheduler = create_sync_scheduler(svc, fast_config())

    task_id = scheduler.add_task(["a", "b", "c"])
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.COMPLETED)
    await scheduler.stop()

    assert svc.calls == [["a", "b", "c"]]
    result = scheduler.get_task_result(task_id)
    assert result is not None
    assert result.successful == 3
    assert result.failed == 0
    assert result.error is None
    assert result.duration >= 0
    assert scheduler.get_task(task_id) is None


@pytest.mark.asyncio
async def test_transient_failure_then_success() -> None:
    svc = FakeSyncService(failures={"app-1": 1})
    scheduler = SyncScheduler(svc, fast_config())

    task_id = scheduler.add_task(["app-1"])
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.COMPLETED)
    await scheduler.stop()

    assert svc.keys() == ["app-1", "app-1"]
    assert scheduler.get_queue_stats().failed == 0


@pytest.mark.asyncio
async def test_retried_high_task_overtakes_queued_medium() -> None:
    svc = FakeSyncService(failures={"h": 1})
    scheduler = SyncScheduler(svc, fast_config(max_concurrent_tasks=1, retry_delay_seconds=0.02))

    scheduler.add_task(["m"], priority="medium")
    scheduler.add_task(["h"], priority="high")

    scheduler.start()
    await wait_until(lambda: scheduler.get_queue_stats().completed == 2)
    await scheduler.stop()

    assert svc.keys() == ["h", "h", "m"]


@pytest.mark.asyncio
async def test_one_failing_task_does_not_block_others() -> None:
    svc = FakeSyncService(failures={"bad": 10})
    scheduler = SyncScheduler(svc, fast_config(max_retries=0))

    bad = scheduler.add_task(["bad"])
    good = scheduler.add_task(["good"])
    scheduler.start()
    await wait_until(lambda: scheduler.get_queue_stats().as_dict() == {
        "pending": 0, "running": 0, "completed": 1, "failed": 1,
    })
    await scheduler.stop()

    assert scheduler.get_task_status(bad) == TaskStatus.FAILED
    assert scheduler.get_task_status(good) == TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_cancel_before_dispatch() -> None:
    svc = FakeSyncService()
    scheduler = SyncScheduler(svc, fast_config())

    task_id = scheduler.add_task(["app-1"])
    assert scheduler.cancel_task(task_id) is True
    assert scheduler.get_task_status(task_id) == TaskStatus.CANCELLED

    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert svc.calls == []
    result = scheduler.get_task_result(task_id)
    assert result is not None
    assert result.status == TaskStatus.CANCELLED
    assert result.duration == 0
    assert scheduler.get_queue_stats().pending == 0
    # second cancel: no longer queued
    assert scheduler.cancel_task(task_id) is False


@pytest.mark.asyncio
async def test_cancel_after_dispatch_is_refused(caplog: pytest.LogCaptureFixture) -> None:
    svc = FakeSyncService(gated=True)
    scheduler = SyncScheduler(svc, fast_config())

    task_id = scheduler.add_task(["app-1"])
    scheduler.start()
    await wait_until(lambda: len(svc.calls) == 1)

    with caplog.at_level(logging.WARNING, logger="status_sync.tasks.task_scheduler"):
        assert scheduler.cancel_task(task_id) is False
    assert "cannot be cancelled" in caplog.text
    assert scheduler.get_task_status(task_id) == TaskStatus.RUNNING

    svc.release("app-1")
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.COMPLETED)
    await scheduler.stop()


def test_unknown_task_lookups() -> None:
    scheduler = SyncScheduler(FakeSyncService(), fast_config())

    assert scheduler.cancel_task("task_missing") is False
    assert scheduler.get_task_status("task_missing") == TaskStatus.UNKNOWN
    assert scheduler.get_task_result("task_missing") is None


@pytest.mark.asyncio
async def test_stop_drains_and_holds_new_tasks() -> None:
    svc = FakeSyncService(gated=True)
    scheduler = SyncScheduler(svc, fast_config())

    first = scheduler.add_task(["first"])
    scheduler.start()
    await wait_until(lambda: len(svc.calls) == 1)

    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0.05)
    assert not stopping.done(), "stop() must wait for the running task"
    assert not scheduler.is_running

    second = scheduler.add_task(["second"])
    svc.release("first")
    await asyncio.wait_for(stopping, timeout=2.0)

    stats = scheduler.get_queue_stats()
    assert stats.running == 0
    assert stats.pending == 1
    assert scheduler.get_task_status(first) == TaskStatus.COMPLETED
    assert scheduler.get_task_status(second) == TaskStatus.PENDING
    assert svc.keys() == ["first"]

    svc.release_all()
    scheduler.start()
    await wait_until(lambda: scheduler.get_task_status(second) == TaskStatus.COMPLETED)
    await scheduler.stop()


@pytest.mark.asyncio
async def test_start_during_stop_drain_does_not_block_stop() -> None:
    svc = FakeSyncService(gated=True)
    scheduler = SyncScheduler(svc, fast_config())

    first = scheduler.add_task(["first"])
    scheduler.start()
    await wait_until(lambda: len(svc.calls) == 1)

    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0)
    assert not scheduler.is_running

    scheduler.start()
    svc.release("first")
    await asyncio.wait_for(stopping, timeout=2.0)

    assert scheduler.is_running
    assert scheduler.get_task_status(first) == TaskStatus.COMPLETED

    svc.release_all()
    second = scheduler.add_task(["second"])
    await wait_until(lambda: scheduler.get_task_status(second) == TaskStatus.COMPLETED)
    await asyncio.wait_for(scheduler.stop(), timeout=2.0)
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_start_twice_only_warns(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = SyncScheduler(FakeSyncService(), fast_config())

    with caplog.at_level(logging.WARNING, logger="status_sync.tasks.task_scheduler"):
        scheduler.start()
        scheduler.start()
    assert "already running" in caplog.text
    assert scheduler.is_running

    await scheduler.stop()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_add_while_running_dispatches_before_next_tick() -> None:
    svc = FakeSyncService()
    # A tick this long would time the test out if dispatch waited for it.
    scheduler = SyncScheduler(svc, fast_config(poll_interval_seconds=30.0))

    scheduler.start()
    await asyncio.sleep(0.01)

    task_id = scheduler.add_task(["urgent"], priority="high")
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.COMPLETED, timeout=1.0)
    await asyncio.wait_for(scheduler.stop(), timeout=1.0)


@pytest.mark.asyncio
async def test_pause_and_resume() -> None:
    svc = FakeSyncService()
    scheduler = SyncScheduler(svc, fast_config())

    assert scheduler.pause() is False  # not running yet
    scheduler.start()
    assert scheduler.pause() is True
    assert scheduler.pause() is False

    task_id = scheduler.add_task(["app-1"])
    await asyncio.sleep(0.05)
    assert svc.calls == []
    assert scheduler.get_task_status(task_id) == TaskStatus.PENDING

    assert scheduler.resume() is True
    assert scheduler.resume() is False
    await wait_until(lambda: scheduler.get_task_status(task_id) == TaskStatus.COMPLETED)
    await scheduler.stop()


@pytest.mark.asyncio
async def test_clear_history_keeps_queue() -> None:
    scheduler = SyncScheduler(FakeSyncService(), fast_config())

    cancelled = scheduler.add_task(["a"])
    queued = scheduler.add_task(["b"])
    scheduler.cancel_task(cancelled)

    scheduler.clear_history()

    assert scheduler.get_all_results() == []
    assert scheduler.get_task_status(cancelled) == TaskStatus.UNKNOWN
    assert scheduler.get_task_status(queued) == TaskStatus.PENDING
    assert [t.id for t in scheduler.pending_tasks()] == [queued]


@pytest.mark.asyncio
async def test_bounded_history_evicts_oldest() -> None:
    svc = FakeSyncService()
    scheduler = SyncScheduler(svc, fast_config(max_concurrent_tasks=1, max_results=2))

    ids = [scheduler.add_task([f"app-{i}"]) for i in range(3)]
    scheduler.start()
    await wait_until(lambda: len(svc.calls) == 3 and scheduler.get_queue_stats().running == 0)
    await scheduler.stop()

    assert [r.task_id for r in scheduler.get_all_results()] == ids[1:]
    assert scheduler.get_task_status(ids[0]) == TaskStatus.UNKNOWN


def test_add_task_rejects_bad_input() -> None:
    scheduler = SyncScheduler(FakeSyncService(), fast_config())

    with pytest.raises(ValueError):
        scheduler.add_task([])
    with pytest.raises(ValueError):
        scheduler.add_task(["a"], priority="urgent")
    assert scheduler.get_queue_stats().pending == 0
