# src/status_sync/tasks/result_store.py

from __future__ import annotations

import logging
from collections import Counter, OrderedDict

from .task_models import TaskResult, TaskStatus

logger = logging.getLogger(__name__)


class ResultStore:
    """
    In-memory history of task outcomes, keyed by task id.

    Results are kept for the lifetime of the process unless:
    - clear() is called, or
    - max_results is set, in which case the oldest entries are evicted first.

    Not thread-safe on its own; SyncScheduler guards every call with its lock.
    """

    def __init__(self, max_results: int | None = None) -> None:
        self._max_results = max_results
        self._results: OrderedDict[str, TaskResult] = OrderedDict()

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._results

    def record(self, result: TaskResult) -> None:
        self._results[result.task_id] = result
        self._results.move_to_end(result.task_id)

        if self._max_results is None:
            return
        while len(self._results) > self._max_results:
            evicted_id, _ = self._results.popitem(last=False)
            logger.debug("Result history full (max=%d); evicted %s", self._max_results, evicted_id)

    def get(self, task_id: str) -> TaskResult | None:
        return self._results.get(task_id)

    def all(self) -> list[TaskResult]:
        return list(self._results.values())

    def counts(self) -> Counter[TaskStatus]:
        return Counter(r.status for r in self._results.values())

    def clear(self) -> int:
        n = len(self._results)
        self._results.clear()
        return n
