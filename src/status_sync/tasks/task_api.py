# src/status_sync/tasks/task_api.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..core.state import AppState
from .task_models import TaskPriority

logger = logging.getLogger(__name__)


def schedule_status_sync(
    state: AppState,
    application_ids: Iterable[str],
    *,
    priority: TaskPriority | str = TaskPriority.MEDIUM,
) -> str:
    """
    Convenience helper for HTTP/console glue: queue a status sync for applications.

    Blank and duplicate ids are dropped (order kept). Raises ValueError if nothing is left.
    """
    seen: set[str] = set()
    ids: list[str] = []
    for raw in application_ids:
        app_id = str(raw).strip()
        if app_id and app_id not in seen:
            seen.add(app_id)
            ids.append(app_id)

    return state.scheduler.add_task(ids, priority=priority)


def describe_task(state: AppState, task_id: str) -> dict[str, Any]:
    """Status plus (if any) the stored result, as a plain dict."""
    scheduler = state.scheduler
    out: dict[str, Any] = {
        "task_id": task_id,
        "status": scheduler.get_task_status(task_id).value,
    }

    task = scheduler.get_task(task_id)
    if task is not None:
        out["priority"] = task.priority.value
        out["retry_count"] = task.retry_count
        out["target_ids"] = list(task.target_ids)

    result = scheduler.get_task_result(task_id)
    if result is not None:
        out["result"] = result.to_dict()
    return out
