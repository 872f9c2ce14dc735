# src/status_sync/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

SCHEDULER_LOGGER = "status_sync.tasks.task_scheduler"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable while the operator REPL shares the terminal.

    With quiet_task_lifecycle, the scheduler's per-task INFO lines (added, started,
    completed) stay in the log file only; retries (WARNING) and terminal failures
    (ERROR) still reach the console. /task and /results show the rest on demand.

    httpx/httpcore request lines, captured Python warnings and other third-party
    loggers only reach the console at ERROR+.
    """

    def __init__(self, *, quiet_task_lifecycle: bool = False) -> None:
        super().__init__()
        self.quiet_task_lifecycle = quiet_task_lifecycle

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name == SCHEDULER_LOGGER and self.quiet_task_lifecycle:
            return record.levelno >= logging.WARNING

        if name.startswith("status_sync."):
            return True

        return record.levelno >= logging.ERROR


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    *,
    log_dir: str | Path = ".local/status_sync",
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
    quiet_task_lifecycle: bool = False,
) -> Path:
    """
    Configure root logging: a filtered console handler plus a full log file.

    Level names ("debug", "WARNING") are accepted as well as numeric levels;
    unknown names fall back to INFO. Call once, before the runner thread starts.
    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "status_sync.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(_resolve_level(console_level))
    ch.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"))
    ch.addFilter(_ConsoleNoiseFilter(quiet_task_lifecycle=quiet_task_lifecycle))
    root.addHandler(ch)

    # The scheduler loop and the console log from different threads.
    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(_resolve_level(file_level))
    fh.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(fh)

    logging.captureWarnings(True)

    return log_file
