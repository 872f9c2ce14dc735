# src/status_sync/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..core.state import AppState
from ..tasks.task_api import describe_task, schedule_status_sync
from ..tasks.task_models import TaskPriority

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float) -> str:
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    scheduler = state.scheduler
    cfg = scheduler.config
    if scheduler.is_running:
        mode = "PAUSED" if scheduler.is_paused else "RUNNING"
    else:
        mode = "STOPPED"
    target = getattr(state.settings, "platform_base_url", None) or "offline"
    return (
        "Status:\n"
        f"  Scheduler: {mode}\n"
        f"  Sync target: {target}\n"
        f"  Concurrency: {cfg.max_concurrent_tasks}, timeout: {cfg.task_timeout_seconds:g}s, "
        f"retries: {cfg.max_retries} (delay {cfg.retry_delay_seconds:g}s)"
    )


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <id> [<id> ...]             -> medium priority
    /add high|medium|low <id> [...]  -> explicit priority
    """
    if not args:
        return "Usage: /add [high|medium|low] <application_id> [<application_id> ...]"

    priority: TaskPriority | str = TaskPriority.MEDIUM
    ids = args
    if args[0].lower() in {p.value for p in TaskPriority}:
        priority = args[0]
        ids = args[1:]

    try:
        task_id = schedule_status_sync(state, ids, priority=priority)
    except ValueError as e:
        return f"Cannot add task: {e}"
    return f"Queued {task_id} ({TaskPriority.parse(priority).value}, {len(ids)} application(s))."


def cmd_task(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /task <task_id>"
    return json.dumps(describe_task(state, args[0]), ensure_ascii=False, indent=2)


def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = state.scheduler.get_queue_stats()
    return "Queue: " + ", ".join(f"{k}={v}" for k, v in stats.as_dict().items())


def cmd_results(state: AppState, args: list[str]) -> str:
    """
    /results      -> last 20 results
    /results <n>  -> last n results
    """
    limit = 20
    if args:
        try:
            limit = max(1, int(args[0]))
        except ValueError:
            return "Usage: /results [n]"

    results = state.scheduler.get_all_results()[-limit:]
    if not results:
        return "No results recorded."

    lines = [f"Last {len(results)} result(s):"]
    for r in results:
        line = (
            f"  {r.task_id} {r.status.value} at {_fmt_ts(r.end_time)} "
            f"({r.duration:.2f}s, ok={r.successful}, failed={r.failed})"
        )
        if r.error:
            line += f" error: {r.error}"
        lines.append(line)
    return "\n".join(lines)


def cmd_cancel(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /cancel <task_id>"
    task_id = args[0]
    if state.scheduler.cancel_task(task_id):
        return f"Cancelled {task_id}."
    status = state.scheduler.get_task_status(task_id)
    return f"Cannot cancel {task_id} (status: {status.value}); only queued tasks can be cancelled."


def cmd_clear(state: AppState, args: list[str]) -> str:
    state.scheduler.clear_history()
    return "Result history cleared."


def cmd_pause(state: AppState, args: list[str]) -> str:
    if state.scheduler.pause():
        return "Scheduler paused. Running tasks will finish; queued tasks wait for /resume."
    return "Scheduler is not running or already paused."


def cmd_resume(state: AppState, args: list[str]) -> str:
    if state.scheduler.resume():
        return "Scheduler resumed."
    return "Scheduler is not paused."


def cmd_start(state: AppState, args: list[str]) -> str:
    if state.runner is None:
        return "No background runner in this context."
    if state.scheduler.is_running:
        return "Scheduler is already running."
    state.runner.start_scheduler()
    return "Scheduler started."


def cmd_stop(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if state.runner is None:
        return "No background runner in this context."
    if not state.scheduler.is_running:
        return "Scheduler is not running."

    running = state.scheduler.get_queue_stats().running
    if emit and running:
        with contextlib.suppress(Exception):
            emit(f"[SCHEDULER] Waiting for {running} running task(s) to finish...")

    state.runner.stop_scheduler()
    return "Scheduler stopped. Queued tasks are kept; use /start to continue."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show scheduler state and configuration.")
registry.register("add", cmd_add, help_text="Queue a status sync: /add [high|medium|low] <id...>.")
registry.register("task", cmd_task, help_text="Show status/result of a task: /task <id>.")
registry.register("stats", cmd_stats, help_text="Show queue statistics.")
registry.register("results", cmd_results, help_text="Show recent results: /results [n].")
registry.register("cancel", cmd_cancel, help_text="Cancel a queued task: /cancel <id>.")
registry.register("clear", cmd_clear, help_text="Clear result history.")
registry.register("pause", cmd_pause, help_text="Pause dispatching (running tasks finish).")
registry.register("resume", cmd_resume, help_text="Resume dispatching.")
registry.register("start", cmd_start, help_text="Start the scheduler.")
registry.register("stop", cmd_stop, help_text="Stop the scheduler and wait for running tasks.")
