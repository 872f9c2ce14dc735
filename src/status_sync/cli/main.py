# src/status_sync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then:
- runs the scheduler on a background thread,
- runs the console REPL in the main thread (optional),
- on exit, drains running tasks before returning.
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    setup_logging(
        log_dir=settings.data_dir,
        console_level=settings.log_level,
        quiet_task_lifecycle=settings.console_enabled,
    )

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    runner = state.runner
    if runner is None or not runner.launch(autostart=settings.autostart):
        logger.error("Scheduler could not be started.")
        return

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or SIGTERM unsupported on this platform.
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Scheduler running in background. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        stats = state.scheduler.get_queue_stats()
        if stats.running:
            logger.info("Draining %d running task(s)...", stats.running)
        runner.stop()
        runner.join()
        pending = state.scheduler.get_queue_stats().pending
        if pending:
            logger.warning("%d queued task(s) were not run (queue is not persisted).", pending)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
