# src/status_sync/tasks/task_models.py

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any


class TaskPriority(StrEnum):
    """
    Priority tier of a sync task.

    Dequeue order is HIGH -> MEDIUM -> LOW, FIFO within a tier.
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, raw: TaskPriority | str) -> TaskPriority:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown priority {raw!r} (expected one of: {allowed})") from None


_PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.LOW: 2,
}


class TaskStatus(StrEnum):
    """
    Task lifecycle status as reported by the scheduler.

    Notes:
    - "unknown" is returned for ids the scheduler has never seen or whose result
      was dropped from history (clear_history / max_results eviction).
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


def new_task_id() -> str:
    return f"task_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"


@dataclass(slots=True, frozen=True)
class SyncTask:
    id: str
    target_ids: tuple[str, ...]
    priority: TaskPriority
    created_at: float
    retry_count: int = 0

    def next_attempt(self) -> SyncTask:
        """Copy used for re-queueing after a failed attempt (same id)."""
        return replace(self, retry_count=self.retry_count + 1)


@dataclass(slots=True, frozen=True)
class TaskResult:
    task_id: str
    status: TaskStatus
    start_time: float
    end_time: float
    successful: int = 0
    failed: int = 0
    error: str | None = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "task_id": self.task_id,
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": round(self.duration, 3),
            "successful": self.successful,
            "failed": self.failed,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(slots=True, frozen=True)
class QueueStats:
    pending: int
    running: int
    completed: int
    failed: int

    def as_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "running": self.running,
            "completed": self.completed,
            "failed": self.failed,
        }


@dataclass(slots=True, frozen=True)
class SchedulerConfig:
    max_concurrent_tasks: int = 5
    task_timeout_seconds: float = 60.0
    retry_delay_seconds: float = 5.0
    max_retries: int = 3
    poll_interval_seconds: float = 1.0
    # None keeps every result until clear_history().
    max_results: int | None = None

    def __post_init__(self) -> None:
        if self.max_concurrent_tasks < 1:
            raise ValueError("max_concurrent_tasks must be >= 1")
        if self.task_timeout_seconds <= 0:
            raise ValueError("task_timeout_seconds must be > 0")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must be >= 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        if self.max_results is not None and self.max_results < 1:
            raise ValueError("max_results must be >= 1 (or None for unbounded)")
