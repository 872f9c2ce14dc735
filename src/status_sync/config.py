# src/status_sync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time (no platform URL => offline sync service).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .tasks.task_models import SchedulerConfig

ENV_PREFIX = "STATUS_SYNC"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_optional(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Switches ----
    console_enabled: bool
    autostart: bool

    # ---- Scheduler ----
    max_concurrent_tasks: int
    task_timeout_seconds: float
    retry_delay_seconds: float
    max_retries: int
    poll_interval_seconds: float
    max_results: int | None

    # ---- Data platform ----
    platform_base_url: str | None
    platform_api_key: str | None
    platform_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        defaults = SchedulerConfig()

        max_results_raw = _env_int(_k("MAX_RESULTS"), 0)

        return Settings(
            app_name=_env(_k("APP_NAME"), "status-sync") or "status-sync",
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=_env_path(_k("DATA_DIR"), Path(".local/status_sync")),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            autostart=_env_bool(_k("AUTOSTART"), True),
            max_concurrent_tasks=_env_int(_k("MAX_CONCURRENT_TASKS"), defaults.max_concurrent_tasks),
            task_timeout_seconds=_env_float(_k("TASK_TIMEOUT_SECONDS"), defaults.task_timeout_seconds),
            retry_delay_seconds=_env_float(_k("RETRY_DELAY_SECONDS"), defaults.retry_delay_seconds),
            max_retries=_env_int(_k("MAX_RETRIES"), defaults.max_retries),
            poll_interval_seconds=_env_float(_k("POLL_INTERVAL_SECONDS"), defaults.poll_interval_seconds),
            # 0 / unset => unbounded history
            max_results=max_results_raw if max_results_raw > 0 else None,
            platform_base_url=_env_optional(_k("PLATFORM_BASE_URL")),
            platform_api_key=_env_optional(_k("PLATFORM_API_KEY")),
            platform_timeout_seconds=_env_float(_k("PLATFORM_TIMEOUT_SECONDS"), 30.0),
        )

    def scheduler_config(self) -> SchedulerConfig:
        return SchedulerConfig(
            max_concurrent_tasks=self.max_concurrent_tasks,
            task_timeout_seconds=self.task_timeout_seconds,
            retry_delay_seconds=self.retry_delay_seconds,
            max_retries=self.max_retries,
            poll_interval_seconds=self.poll_interval_seconds,
            max_results=self.max_results,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
