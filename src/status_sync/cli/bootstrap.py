# src/status_sync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- picks the sync service (data platform over HTTP, or offline demo),
- wires the scheduler (and optionally its background runner) into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import SyncService
from ..core.state import AppState
from ..sync.offline import OfflineSyncService
from ..sync.platform_client import DataPlatformSyncService
from ..tasks.task_scheduler import create_sync_scheduler
from .background import SchedulerBackgroundRunner

logger = logging.getLogger(__name__)


def build_sync_service(settings) -> SyncService:
    base_url = getattr(settings, "platform_base_url", None)
    if not base_url:
        logger.info("No data platform configured; using offline sync service.")
        return OfflineSyncService()

    logger.info("Data platform sync target: %s", base_url)
    return DataPlatformSyncService(
        base_url,
        api_key=getattr(settings, "platform_api_key", None),
        timeout_seconds=float(getattr(settings, "platform_timeout_seconds", 30.0)),
    )


def create_initial_state(*, settings=None, with_runner: bool = True) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    The runner is created but not launched; call state.runner.launch().
    """
    if settings is None:
        settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)

    sync_service = build_sync_service(settings)
    scheduler = create_sync_scheduler(sync_service, settings.scheduler_config())

    runner = None
    if with_runner:
        runner = SchedulerBackgroundRunner(scheduler, on_shutdown=getattr(sync_service, "aclose", None))

    return AppState(
        settings=settings,
        sync_service=sync_service,
        scheduler=scheduler,
        runner=runner,
    )
