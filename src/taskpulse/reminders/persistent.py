# src/taskpulse/reminders/persistent.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


class PersistentReminderManager:
    """
    "Nag until done" timers, one asyncio task per task id.

    Each timer wakes every `notification_interval` minutes, re-reads the latest
    task snapshot through `lookup` and calls `notify` until the task is completed,
    cancelled or gone. Independent from the main poll loop.
    """

    def __init__(
        self,
        lookup: Callable[[str], Task | None],
        notify: Callable[[Task], None],
        *,
        minute_seconds: float = 60.0,
    ) -> None:
        self._lookup = lookup
        self._notify = notify
        self._minute_seconds = minute_seconds
        self._timers: dict[str, asyncio.Task[None]] = {}

    @property
    def active_ids(self) -> list[str]:
        return sorted(tid for tid, t in self._timers.items() if not t.done())

    def has_timer(self, task_id: str) -> bool:
        t = self._timers.get(task_id)
        return t is not None and not t.done()

    def ensure(self, task: Task) -> bool:
        """Start a timer for `task`. No-op (returns False) if one is already running."""
        if self.has_timer(task.id):
            return False
        period = max(1, int(task.notification_interval)) * self._minute_seconds
        self._timers[task.id] = asyncio.create_task(
            self._run(task.id, period),
            name=f"persistent-reminder:{task.id}",
        )
        logger.info("Persistent reminder started task_id=%s every=%smin", task.id, task.notification_interval)
        return True

    async def _run(self, task_id: str, period: float) -> None:
        try:
            while True:
                await asyncio.sleep(period)

                task = self._lookup(task_id)
                if task is None or task.is_closed:
                    logger.info("Persistent reminder finished task_id=%s", task_id)
                    return

                try:
                    self._notify(task)
                except Exception:
                    logger.exception("Persistent reminder notify failed task_id=%s", task_id)
        finally:
            if self._timers.get(task_id) is asyncio.current_task():
                del self._timers[task_id]

    def cancel(self, task_id: str) -> bool:
        t = self._timers.pop(task_id, None)
        if t is None:
            return False
        t.cancel()
        logger.debug("Persistent reminder cancelled task_id=%s", task_id)
        return True

    def cancel_all(self) -> int:
        timers = list(self._timers.values())
        self._timers.clear()
        for t in timers:
            t.cancel()
        if timers:
            logger.info("Cleared %d persistent reminder timers", len(timers))
        return len(timers)
