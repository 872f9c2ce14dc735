# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from status_sync.core.state import AppState
from status_sync.tasks.task_scheduler import SyncScheduler

from .fakes import FakeSyncService, fast_config


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the console commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="status-sync-test",
        data_dir=tmp_path / "data",
        platform_base_url=None,
        platform_api_key=None,
        platform_timeout_seconds=5.0,
    )


@pytest.fixture()
def sync_service() -> FakeSyncService:
    return FakeSyncService()


@pytest.fixture()
def state(settings: SimpleNamespace, sync_service: FakeSyncService) -> AppState:
    """
    AppState wired with a fake sync service and no background runner.

    Commands that need the runner (/start, /stop) report that it is missing.
    """
    return AppState(
        settings=settings,
        sync_service=sync_service,
        scheduler=SyncScheduler(sync_service, fast_config()),
        runner=None,
    )
