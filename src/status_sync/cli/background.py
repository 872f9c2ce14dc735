# src/status_sync/cli/background.py

"""
Run the scheduler on its own event loop in a background thread.

Why a thread:
- console REPL is blocking (input()).
- SyncScheduler is async and wants a running loop for start()/stop().
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any

from ..tasks.task_scheduler import SyncScheduler

logger = logging.getLogger(__name__)


class SchedulerBackgroundRunner:
    def __init__(
        self,
        scheduler: SyncScheduler,
        *,
        on_shutdown: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self.scheduler = scheduler
        self._on_shutdown = on_shutdown
        self._ready = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._thread = threading.Thread(target=self._run, name="sync-scheduler", daemon=True)

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    def launch(self, *, autostart: bool = True, timeout: float = 5.0) -> bool:
        """Start the loop thread (and the scheduler unless autostart=False)."""
        self._thread.start()
        if not self._ready.wait(timeout=timeout) or self._loop is None:
            logger.error("Scheduler thread did not initialize properly.")
            return False
        logger.info("Scheduler background thread started.")
        if autostart:
            self.start_scheduler()
        return True

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._stop_event = asyncio.Event()
        self._ready.set()

        try:
            loop.run_until_complete(self._main(self._stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            with contextlib.suppress(Exception):
                loop.close()

    async def _main(self, stop_event: asyncio.Event) -> None:
        await stop_event.wait()
        # Drain: running attempts finish, nothing new starts.
        await self.scheduler.stop()
        if self._on_shutdown is not None:
            try:
                await self._on_shutdown()
            except Exception:
                logger.exception("Sync service shutdown failed.")

    def call(self, fn: Callable[[], Any], timeout: float | None = 10.0) -> Any:
        """Run a plain callable on the scheduler loop and return its result."""
        return self.submit(_as_coro(fn), timeout=timeout)

    def submit(self, coro: Awaitable[Any], timeout: float | None = None) -> Any:
        if self._loop is None or self._loop.is_closed():
            raise RuntimeError("Scheduler loop is not running")
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)  # type: ignore[arg-type]
        return fut.result(timeout=timeout)

    def start_scheduler(self) -> None:
        self.call(self.scheduler.start)

    def stop_scheduler(self, timeout: float | None = None) -> None:
        """Stop dispatching and block until in-flight tasks have drained."""
        self.submit(self.scheduler.stop(), timeout=timeout)

    def stop(self) -> None:
        """Drain the scheduler and end the loop thread (use join() to wait)."""
        loop, stop_event = self._loop, self._stop_event
        if loop is None or stop_event is None:
            return
        try:
            loop.call_soon_threadsafe(stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal scheduler stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout=timeout)


async def _as_coro(fn: Callable[[], Any]) -> Any:
    return fn()
