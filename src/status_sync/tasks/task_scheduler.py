# src/status_sync/tasks/task_scheduler.py

from __future__ import annotations

"""
Sync task scheduler.

A small dispatch loop that:
- pulls queued tasks in priority order (FIFO within a tier),
- runs at most max_concurrent_tasks sync calls at once,
- enforces a timeout per attempt,
- re-queues failed attempts after a delay until max_retries is exhausted,
- keeps the latest outcome per task id for inspection.

State (queue, in-flight map, result history) lives behind one threading.Lock, so the
synchronous API can be called from other threads (e.g. the console) while the loop
runs on its own event loop. Nothing is awaited while the lock is held.

Running tasks cannot be cancelled; cancel_task() only removes queued ones.
"""

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import Iterable, Mapping
from typing import Any

from ..core.ports import SyncOutcome, SyncService
from .result_store import ResultStore
from .task_models import (
    QueueStats,
    SchedulerConfig,
    SyncTask,
    TaskPriority,
    TaskResult,
    TaskStatus,
    new_task_id,
)
from .task_queue import PriorityTaskQueue

logger = logging.getLogger(__name__)


class SyncScheduler:
    def __init__(self, sync_service: SyncService, config: SchedulerConfig | None = None) -> None:
        self._sync_service = sync_service
        self._config = config or SchedulerConfig()

        self._lock = threading.Lock()
        self._queue = PriorityTaskQueue()
        self._running: dict[str, SyncTask] = {}
        self._results = ResultStore(max_results=self._config.max_results)

        self._active = False
        self._paused = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._workers: set[asyncio.Task[None]] = set()
        self._wakeup = asyncio.Event()

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._active

    @property
    def is_paused(self) -> bool:
        return self._paused

    # ---- submission / lifecycle ----

    def add_task(
        self,
        target_ids: Iterable[str],
        priority: TaskPriority | str = TaskPriority.MEDIUM,
    ) -> str:
        """Queue a sync task and return its id. Dispatch is attempted right away when running."""
        targets = tuple(str(t) for t in target_ids)
        if not targets:
            raise ValueError("target_ids must not be empty")

        task = SyncTask(
            id=new_task_id(),
            target_ids=targets,
            priority=TaskPriority.parse(priority),
            created_at=time.time(),
        )
        with self._lock:
            self._queue.insert(task)

        logger.info("Task added: %s priority=%s targets=%d", task.id, task.priority.value, len(targets))
        self._poke()
        return task.id

    def start(self) -> None:
        """Begin dispatching. Must be called from inside a running event loop."""
        if self._active:
            logger.warning("Scheduler is already running")
            return

        self._loop = asyncio.get_running_loop()
        # asyncio.Event binds to the first loop that waits on it.
        self._wakeup = asyncio.Event()
        # Per-run stop signal; stop() only ends the run it observed.
        self._stop_event = asyncio.Event()
        self._active = True
        self._paused = False
        self._loop_task = self._loop.create_task(self._run_loop(self._stop_event), name="sync-scheduler")
        logger.info("Scheduler started (max_concurrent=%d)", self._config.max_concurrent_tasks)

    async def stop(self) -> None:
        """
        Stop dispatching and wait until in-flight attempts have finished.

        Queued tasks stay queued; they run again after the next start().
        Only attempts already in flight when stop() is called are waited for.
        """
        if not self._active and not self._workers:
            return

        loop_task, stop_event = self._loop_task, self._stop_event
        self._active = False
        if stop_event is not None:
            stop_event.set()
        self._wakeup.set()

        if loop_task is not None:
            await loop_task
            if self._loop_task is loop_task:
                self._loop_task = None

        workers = set(self._workers)
        if workers:
            logger.info("Waiting for %d running task(s) to finish...", len(workers))
            await asyncio.wait(workers)

        logger.info("Scheduler stopped")

    def pause(self) -> bool:
        """Stop starting new tasks; running ones finish normally."""
        if not self._active:
            logger.warning("Cannot pause: scheduler is not running")
            return False
        if self._paused:
            logger.warning("Scheduler is already paused")
            return False
        self._paused = True
        logger.info("Scheduler paused")
        return True

    def resume(self) -> bool:
        if not self._paused:
            logger.warning("Cannot resume: scheduler is not paused")
            return False
        self._paused = False
        logger.info("Scheduler resumed")
        self._poke()
        return True

    # ---- introspection ----

    def cancel_task(self, task_id: str) -> bool:
        """Cancel a queued task. Running tasks cannot be cancelled."""
        with self._lock:
            cancelled = self._queue.remove(task_id)
            running = task_id in self._running
            if cancelled:
                now = time.time()
                self._results.record(
                    TaskResult(task_id=task_id, status=TaskStatus.CANCELLED, start_time=now, end_time=now)
                )

        if cancelled:
            logger.info("Task cancelled: %s", task_id)
        elif running:
            logger.warning("Task %s is running and cannot be cancelled", task_id)
        else:
            logger.debug("cancel_task: %s is not queued", task_id)
        return cancelled

    def get_task_status(self, task_id: str) -> TaskStatus:
        with self._lock:
            if task_id in self._running:
                return TaskStatus.RUNNING
            result = self._results.get(task_id)
            if result is not None:
                return result.status
            if task_id in self._queue:
                return TaskStatus.PENDING
        return TaskStatus.UNKNOWN

    def get_task_result(self, task_id: str) -> TaskResult | None:
        with self._lock:
            return self._results.get(task_id)

    def get_all_results(self) -> list[TaskResult]:
        with self._lock:
            return self._results.all()

    def get_queue_stats(self) -> QueueStats:
        with self._lock:
            counts = self._results.counts()
            return QueueStats(
                pending=len(self._queue),
                running=len(self._running),
                completed=counts[TaskStatus.COMPLETED],
                failed=counts[TaskStatus.FAILED],
            )

    def get_task(self, task_id: str) -> SyncTask | None:
        """The queued or in-flight task with this id (None once it has a terminal result)."""
        with self._lock:
            return self._running.get(task_id) or self._queue.get(task_id)

    def pending_tasks(self) -> list[SyncTask]:
        with self._lock:
            return list(self._queue.snapshot())

    def running_tasks(self) -> list[SyncTask]:
        with self._lock:
            return list(self._running.values())

    def clear_history(self) -> None:
        with self._lock:
            n = self._results.clear()
        logger.info("Result history cleared (%d entries)", n)

    # ---- dispatch ----

    def _poke(self) -> None:
        """Ask the loop thread to try a dispatch now instead of waiting for the next tick."""
        loop = self._loop
        if not self._active or self._paused or loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._process_next)
        except RuntimeError:
            logger.debug("Scheduler loop is closed; dispatch deferred", exc_info=True)

    def _claim_next(self) -> SyncTask | None:
        # Queue -> in-flight in one step: a task is never in both, never in neither.
        with self._lock:
            if len(self._running) >= self._config.max_concurrent_tasks:
                return None
            task = self._queue.take_next()
            if task is None:
                return None
            self._running[task.id] = task
            return task

    def _spawn(self, task: SyncTask) -> None:
        worker = asyncio.get_running_loop().create_task(self._execute(task), name=f"sync-{task.id}")
        self._workers.add(worker)
        worker.add_done_callback(self._workers.discard)
        logger.debug("Dispatched %s (attempt %d)", task.id, task.retry_count + 1)

    def _process_next(self) -> None:
        if not self._active or self._paused:
            return
        task = self._claim_next()
        if task is not None:
            self._spawn(task)
        self._wakeup.set()

    async def _idle(self) -> None:
        wakeup = self._wakeup
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(wakeup.wait(), timeout=self._config.poll_interval_seconds)
        wakeup.clear()

    async def _run_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            if self._paused:
                await self._idle()
                continue

            task = self._claim_next()
            if task is None:
                await self._idle()
                continue

            self._spawn(task)
            # Let the new attempt start before claiming the next one.
            await asyncio.sleep(0)

    # ---- execution ----

    async def _execute(self, task: SyncTask) -> None:
        start_time = time.time()
        timeout = self._config.task_timeout_seconds
        logger.info("Task started: %s (attempt %d/%d)", task.id, task.retry_count + 1, self._config.max_retries + 1)

        deadline = asyncio.timeout(timeout)
        try:
            try:
                async with deadline:
                    outcome = _coerce_outcome(await self._sync_service.perform_sync(list(task.target_ids)))
            except Exception as exc:
                if isinstance(exc, TimeoutError) and deadline.expired():
                    error = f"Task timed out after {timeout:g}s"
                else:
                    logger.debug("Sync call raised for %s", task.id, exc_info=True)
                    error = str(exc) or exc.__class__.__name__
                await self._handle_failure(task, start_time, error)
            else:
                self._finish(task, _completed_result(task.id, start_time, outcome))
                logger.info("Task completed: %s", task.id)
        finally:
            with self._lock:
                self._running.pop(task.id, None)
            self._process_next()

    async def _handle_failure(self, task: SyncTask, start_time: float, error: str) -> None:
        if task.retry_count < self._config.max_retries:
            retry = task.next_attempt()
            logger.warning(
                "Task %s failed: %s; retry %d/%d in %.2fs",
                task.id,
                error,
                retry.retry_count,
                self._config.max_retries,
                self._config.retry_delay_seconds,
            )
            await asyncio.sleep(self._config.retry_delay_seconds)
            with self._lock:
                self._running.pop(task.id, None)
                self._queue.insert(retry)
            return

        self._finish(
            task,
            TaskResult(
                task_id=task.id,
                status=TaskStatus.FAILED,
                start_time=start_time,
                end_time=time.time(),
                error=error,
            ),
        )
        logger.error("Task failed after %d attempt(s): %s: %s", task.retry_count + 1, task.id, error)

    def _finish(self, task: SyncTask, result: TaskResult) -> None:
        with self._lock:
            self._running.pop(task.id, None)
            self._results.record(result)


def _coerce_outcome(outcome: Any) -> SyncOutcome:
    """Accept a SyncOutcome or a {"successful": n, "failed": m} mapping; anything else is an error."""
    if isinstance(outcome, SyncOutcome):
        return outcome
    if isinstance(outcome, Mapping):
        return SyncOutcome(
            successful=int(outcome.get("successful") or 0),
            failed=int(outcome.get("failed") or 0),
        )
    raise TypeError(f"Sync service returned {type(outcome).__name__}, expected SyncOutcome")


def _completed_result(task_id: str, start_time: float, outcome: SyncOutcome) -> TaskResult:
    return TaskResult(
        task_id=task_id,
        status=TaskStatus.COMPLETED,
        start_time=start_time,
        end_time=time.time(),
        successful=outcome.successful,
        failed=outcome.failed,
    )


def create_sync_scheduler(sync_service: SyncService, config: SchedulerConfig | None = None) -> SyncScheduler:
    return SyncScheduler(sync_service, config)
