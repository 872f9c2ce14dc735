# src/status_sync/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..tasks.task_scheduler import SyncScheduler
from .ports import SyncService

if TYPE_CHECKING:
    from ..cli.background import SchedulerBackgroundRunner


@dataclass
class AppState:
    """
    Runtime state shared by the console and task helpers.

    runner is None when the scheduler lives on the caller's own event loop
    (tests, embedding in an async web app).
    """

    settings: Any
    sync_service: SyncService
    scheduler: SyncScheduler
    runner: SchedulerBackgroundRunner | None = None
