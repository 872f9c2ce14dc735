# src/status_sync/tasks/task_queue.py

from __future__ import annotations

"""
Priority queue of pending sync tasks.

Ordering: HIGH before MEDIUM before LOW, insertion order within a tier.
There is no aging: a steady stream of HIGH tasks keeps LOW tasks waiting.

Not thread-safe on its own; SyncScheduler guards every call with its lock.
"""

from collections import deque

from .task_models import SyncTask, TaskPriority


class PriorityTaskQueue:
    def __init__(self) -> None:
        self._tiers: dict[TaskPriority, deque[SyncTask]] = {
            p: deque() for p in sorted(TaskPriority, key=lambda p: p.rank)
        }

    def __len__(self) -> int:
        return sum(len(tier) for tier in self._tiers.values())

    def __contains__(self, task_id: object) -> bool:
        return self.get(task_id) is not None  # type: ignore[arg-type]

    def insert(self, task: SyncTask) -> None:
        """Place task after every higher-priority task and after its own tier."""
        self._tiers[task.priority].append(task)

    def take_next(self) -> SyncTask | None:
        for tier in self._tiers.values():
            if tier:
                return tier.popleft()
        return None

    def remove(self, task_id: str) -> bool:
        for tier in self._tiers.values():
            for task in tier:
                if task.id == task_id:
                    tier.remove(task)
                    return True
        return False

    def get(self, task_id: str) -> SyncTask | None:
        for tier in self._tiers.values():
            for task in tier:
                if task.id == task_id:
                    return task
        return None

    def snapshot(self) -> tuple[SyncTask, ...]:
        """Queued tasks in dequeue order."""
        return tuple(task for tier in self._tiers.values() for task in tier)
