# src/taskpulse/reminders/windows.py

"""
Window calculator.

For a task and "now", decides the concrete due instant for the current evaluation pass:

- single:         due = snooze_until or reminder_time
- multi_day:      reminder_time and end_time on different days; due = today at reminder_time's
                  HH:MM, only inside [start of reminder day, end of end day]
- daily_instance: repeat_rule == daily; due = today at reminder_time's HH:MM from the
                  reminder day onward (bounded by end_time's day when set)

Recurring kinds fire at most once per calendar day; the scheduler keys them by date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import StrEnum

from ..tasks.task_models import RepeatRule, Task


class WindowKind(StrEnum):
    SINGLE = "single"
    MULTI_DAY = "multi_day"
    DAILY_INSTANCE = "daily_instance"


@dataclass(slots=True, frozen=True)
class Window:
    kind: WindowKind
    due: datetime
    # Calendar day the firing belongs to (recurring kinds only).
    on_date: date | None = None

    @property
    def recurring(self) -> bool:
        return self.kind != WindowKind.SINGLE


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min)


def end_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min) + timedelta(days=1) - timedelta(microseconds=1)


def classify(task: Task) -> WindowKind:
    if task.is_multi_day:
        return WindowKind.MULTI_DAY
    if task.repeat_rule == RepeatRule.DAILY:
        return WindowKind.DAILY_INSTANCE
    return WindowKind.SINGLE


def _today_at(now: datetime, reminder_time: datetime) -> datetime:
    return datetime.combine(now.date(), time(reminder_time.hour, reminder_time.minute))


def compute_window(task: Task, now: datetime) -> Window | None:
    """
    Return today's window for `task`, or None when it has nothing due in this pass.

    Undated tasks never get a window. Recurring kinds outside their active date range
    return None as well.
    """
    if task.reminder_time is None:
        return None

    kind = classify(task)

    if kind == WindowKind.SINGLE:
        due = task.snooze_until or task.reminder_time
        return Window(kind=kind, due=due)

    first = start_of_day(task.reminder_time)
    if now < first:
        return None
    if task.end_time is not None and now > end_of_day(task.end_time):
        return None

    return Window(kind=kind, due=_today_at(now, task.reminder_time), on_date=now.date())


def minutes_until(due: datetime, now: datetime) -> int:
    """Whole minutes from now until due, truncated toward zero (negative once passed)."""
    return int((due - now).total_seconds() / 60)
