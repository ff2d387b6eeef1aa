# src/taskpulse/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable, Coroutine
from datetime import datetime, time, timedelta
from typing import Any, TypeVar, cast

from ..core.state import AppState
from ..reminders.scheduler import FireOutcome
from ..tasks.task_models import Priority, RepeatRule, Task, TaskStatus

CommandEmitter = Callable[[str], None]
CommandHandler4 = Callable[[AppState, list[str], str | None, str | None], str]
CommandHandler5 = Callable[
    [AppState, list[str], str | None, str | None, CommandEmitter | None], str
]
CommandHandler = CommandHandler4 | CommandHandler5

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, ...)."""

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
        user_id: str | None = None,
        room_id: str | None = None,
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
        except Exception:
            nparams = 5

        if nparams >= 5:
            h5 = cast(CommandHandler5, handler)
            return h5(state, args, user_id, room_id, emit)

        h4 = cast(CommandHandler4, handler)
        return h4(state, args, user_id, room_id)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _await(state: AppState, coro: Coroutine[Any, Any, T]) -> T:
    """Run an engine coroutine: on the engine's loop when it runs in the background, else inline."""
    if state.runner is not None:
        return state.runner.submit(coro)
    return asyncio.run(coro)


async def _loaded(state: AppState, task_id: str | None = None) -> None:
    engine = state.engine
    if task_id is None or task_id not in engine.cache:
        await engine.refresh()


def _fmt_due(task: Task) -> str:
    due = task.snooze_until or task.reminder_time
    if due is None:
        return "-"
    return due.strftime("%Y-%m-%d %H:%M")


def _parse_when(raw: str, now: datetime) -> datetime | None:
    """"HH:MM" (today, or tomorrow once passed) or an ISO date-time."""
    try:
        hhmm = time.fromisoformat(raw)
    except ValueError:
        hhmm = None
    if hhmm is not None:
        at = datetime.combine(now.date(), hhmm)
        return at if at >= now else at + timedelta(days=1)
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def cmd_help(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    return registry.build_help()


def cmd_status(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    s = state.settings
    engine = state.engine
    banner = "DISABLED" if engine.notifications_disabled else state.emitter.permission.value
    return (
        "Status:\n"
        f"  Engine: {'running' if engine.running or state.runner is not None else 'stopped'}"
        f" (every {float(s.poll_interval_seconds):.0f}s)\n"
        f"  Notifications: {banner}\n"
        f"  Tasks cached: {len(engine.cache)}\n"
        f"  Checkpoints recorded: {len(engine.ledger)}\n"
        f"  Persistent timers: {len(engine.persistent.active_ids)}\n"
        f"  Default quiet hours: {s.quiet_start}-{s.quiet_end}"
    )


def cmd_tasks(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /tasks      -> open tasks
    /tasks all  -> include completed and cancelled
    """
    _await(state, _loaded(state))
    show_all = bool(args) and args[0].lower() == "all"
    tasks = [t for t in state.engine.cache.all() if show_all or not t.is_closed]
    if not tasks:
        return "No tasks."

    tasks.sort(key=lambda t: (t.snooze_until or t.reminder_time or datetime.max, t.title))
    lines = ["Tasks:"]
    for t in tasks:
        extra = []
        if t.parent_task_id:
            extra.append(f"sub of {t.parent_task_id}")
        if t.dependencies:
            extra.append("deps " + ",".join(t.dependencies))
        if t.progress:
            extra.append(f"{t.progress}%")
        if t.repeat_rule != RepeatRule.NONE:
            extra.append(t.repeat_rule.value)
        suffix = f" ({'; '.join(extra)})" if extra else ""
        lines.append(f"  [{t.id}] {t.status.value:<11} {t.priority.value:<6} {_fmt_due(t)}  {t.title}{suffix}")
    return "\n".join(lines)


def cmd_add(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """/add <HH:MM|ISO> [!priority] <title...>"""
    if len(args) < 2:
        return "Usage: /add <HH:MM|YYYY-MM-DDTHH:MM> [!low|!medium|!high|!urgent] <title>"

    when = _parse_when(args[0], state.clock.now())
    if when is None:
        return f"Cannot parse time: {args[0]}"

    rest = list(args[1:])
    priority = Priority.MEDIUM
    if rest and rest[0].startswith("!"):
        priority = Priority.from_raw(rest.pop(0)[1:].lower())
    title = " ".join(rest).strip()
    if not title:
        return "Title is required."

    task = Task(id=uuid.uuid4().hex[:8], title=title, reminder_time=when, priority=priority)
    state.service.add_task(task)
    _await(state, state.engine.refresh())
    return f"Added [{task.id}] {title} at {when.strftime('%Y-%m-%d %H:%M')}."


def cmd_tick(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    async def run():
        firings = await state.engine.tick()
        await state.engine.flush()
        return firings

    firings = _await(state, run())
    if not firings:
        return "Tick: nothing due."
    lines = [f"Tick: {len(firings)} checkpoint(s)"]
    for f in firings:
        lines.append(f"  [{f.task_id}] {f.key.kind.value:<8} {f.outcome.value:<11} {f.title}")
    delivered = sum(1 for f in firings if f.outcome == FireOutcome.DELIVERED)
    if delivered < len(firings):
        lines.append(f"  ({len(firings) - delivered} not shown)")
    return "\n".join(lines)


def cmd_done(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /done <task_id>"
    task_id = args[0]

    async def run():
        await _loaded(state, task_id)
        result = await state.engine.complete(task_id)
        if state.runner is None:
            # asyncio.run closes the loop on return; let the completion note finish first.
            await state.cascade.drain()
        return result

    result = _await(state, run())
    task = state.engine.cache.get(task_id)
    if task is None:
        return f"Unknown task: {task_id}"
    if result is None:
        return f"[{task_id}] is already completed. Use /undo {task_id} to reopen it."

    parts = [f"[{task_id}] {task.title} -> {result.status.value}"]
    if result.unblocked:
        parts.append("unblocked: " + ", ".join(result.unblocked))
    if result.cascaded:
        parts.append("subtasks completed: " + ", ".join(result.cascaded))
    if result.failed_writes:
        parts.append("not saved: " + ", ".join(result.failed_writes))
    return "; ".join(parts)


def cmd_undo(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /undo <task_id>"
    task_id = args[0]

    async def run():
        await _loaded(state, task_id)
        task = state.engine.cache.get(task_id)
        if task is None or task.status != TaskStatus.COMPLETED:
            return None
        return await state.cascade.toggle_complete(task_id)

    result = _await(state, run())
    if result is None:
        return f"[{task_id}] is not a completed task."
    removed = "completion record removed" if result.record_removed else "no completion record"
    return f"[{task_id}] reopened ({removed})."


def cmd_subtask(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /subtask <subtask_id>"
    task_id = args[0]

    async def run():
        await _loaded(state, task_id)
        if task_id not in state.engine.cache:
            return None
        return await state.cascade.toggle_subtask(task_id)

    result = _await(state, run())
    if result is None:
        return f"Unknown task: {task_id}"
    progress = ", ".join(f"{pid}={p}%" for pid, p in result.progress_updates.items())
    return f"[{task_id}] -> {result.status.value}" + (f"; progress {progress}" if progress else "")


def cmd_snooze(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /snooze <task_id> [minutes]"
    task_id = args[0]
    minutes: int | None = None
    if len(args) > 1:
        try:
            minutes = max(1, int(args[1]))
        except ValueError:
            return f"Not a number of minutes: {args[1]}"

    async def run():
        await _loaded(state, task_id)
        return await state.engine.snooze(task_id, minutes)

    task = _await(state, run())
    if task is None:
        return f"Unknown task: {task_id}"
    return f"[{task_id}] snoozed until {_fmt_due(task)} (snoozed {task.snooze_count}x)."


def cmd_deps(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /deps <id>            -> clear dependencies
    /deps <id> a b c      -> depend on a, b and c
    """
    if not args:
        return "Usage: /deps <task_id> [dependency_ids...]"
    task_id, dep_ids = args[0], args[1:]

    async def run():
        await _loaded(state, task_id)
        if task_id not in state.engine.cache:
            return None
        return await state.cascade.set_dependencies(task_id, dep_ids)

    task = _await(state, run())
    if task is None:
        return f"Unknown task: {task_id}"
    deps = ", ".join(task.dependencies) or "none"
    return f"[{task_id}] depends on: {deps}; status {task.status.value}."


def cmd_timers(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    ids = state.engine.persistent.active_ids
    if not ids:
        return "No persistent reminders running."
    return "Persistent reminders: " + ", ".join(ids)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show engine and notification status.")
registry.register("tasks", cmd_tasks, help_text="List open tasks: /tasks [all].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <HH:MM|ISO> [!priority] <title>.")
registry.register("tick", cmd_tick, help_text="Run one reminder pass now.")
registry.register("done", cmd_done, help_text="Complete a task (cascades): /done <id>.")
registry.register("undo", cmd_undo, help_text="Reopen a completed task: /undo <id>.")
registry.register("subtask", cmd_subtask, help_text="Toggle a subtask: /subtask <id>.")
registry.register("snooze", cmd_snooze, help_text="Snooze a task: /snooze <id> [minutes].")
registry.register("deps", cmd_deps, help_text="Set dependencies: /deps <id> [ids...].")
registry.register("timers", cmd_timers, help_text="List running persistent reminders.")
