# src/taskpulse/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    SNOOZED = "snoozed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def from_raw(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except Exception:
            return cls.PENDING


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_raw(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except Exception:
            return cls.MEDIUM


class RepeatRule(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"

    @classmethod
    def from_raw(cls, raw: str | None) -> RepeatRule:
        if not raw:
            return cls.NONE
        try:
            return cls(raw)
        except Exception:
            return cls.NONE


class MessageType(StrEnum):
    """Tone of a reminder-strategy step."""

    DEFAULT = "default"
    URGENT = "urgent"
    ENCOURAGING = "encouraging"
    SUMMARY = "summary"

    @classmethod
    def from_raw(cls, raw: str | None) -> MessageType:
        if not raw:
            return cls.DEFAULT
        try:
            return cls(raw)
        except Exception:
            return cls.DEFAULT


ALL = "all"


def parse_instant(raw: Any) -> datetime | None:
    """
    Parse an instant into a naive local datetime.

    Accepts datetime objects and ISO-8601 strings (a trailing "Z" is allowed).
    Aware values are converted to local time first, so calendar-day logic
    always runs in the user's wall clock.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, str):
        s = raw.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def format_instant(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def _int_tuple(raw: Any) -> tuple[int, ...]:
    if not raw:
        return ()
    out: list[int] = []
    for v in raw:
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            continue
    return tuple(out)


def _str_tuple(raw: Any) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(str(v) for v in raw if v is not None and str(v) != "")


@dataclass(slots=True, frozen=True)
class ReminderStep:
    offset_minutes: int
    message_type: MessageType = MessageType.DEFAULT
    custom_message: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ReminderStep:
        try:
            offset = int(d.get("offset_minutes") or 0)
        except (TypeError, ValueError):
            offset = 0
        return cls(
            offset_minutes=offset,
            message_type=MessageType.from_raw(d.get("message_type")),
            custom_message=str(d.get("custom_message") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "offset_minutes": self.offset_minutes,
            "message_type": self.message_type.value,
            "custom_message": self.custom_message,
        }


@dataclass(slots=True, frozen=True)
class ReminderStrategy:
    steps: tuple[ReminderStep, ...] = ()
    dynamic_adjustment: bool = False

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> ReminderStrategy | None:
        if not d:
            return None
        steps = tuple(ReminderStep.from_dict(s) for s in (d.get("steps") or []) if isinstance(s, dict))
        return cls(steps=steps, dynamic_adjustment=bool(d.get("dynamic_adjustment", False)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "dynamic_adjustment": self.dynamic_adjustment,
        }


@dataclass(slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    description: str = ""

    reminder_time: datetime | None = None
    end_time: datetime | None = None
    repeat_rule: RepeatRule = RepeatRule.NONE

    priority: Priority = Priority.MEDIUM
    category: str = "other"

    # Ownership and dependencies are ids only; resolve them through the current collection.
    parent_task_id: str | None = None
    dependencies: tuple[str, ...] = ()
    progress: int = 0

    advance_reminders: tuple[int, ...] = ()
    reminder_strategy: ReminderStrategy | None = None
    persistent_reminder: bool = False
    notification_interval: int = 15
    notification_sound: str = "default"

    snooze_until: datetime | None = None
    snooze_count: int = 0
    reminder_sent: bool = False
    completed_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)

    @property
    def is_multi_day(self) -> bool:
        if self.reminder_time is None or self.end_time is None:
            return False
        return self.reminder_time.date() != self.end_time.date()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Task:
        try:
            progress = max(0, min(100, int(d.get("progress") or 0)))
        except (TypeError, ValueError):
            progress = 0
        try:
            interval = int(d.get("notification_interval") or 15)
        except (TypeError, ValueError):
            interval = 15
        try:
            snooze_count = int(d.get("snooze_count") or 0)
        except (TypeError, ValueError):
            snooze_count = 0

        return cls(
            id=str(d["id"]),
            title=str(d.get("title") or ""),
            status=TaskStatus.from_raw(d.get("status")),
            description=str(d.get("description") or ""),
            reminder_time=parse_instant(d.get("reminder_time")),
            end_time=parse_instant(d.get("end_time")),
            repeat_rule=RepeatRule.from_raw(d.get("repeat_rule")),
            priority=Priority.from_raw(d.get("priority")),
            category=str(d.get("category") or "other"),
            parent_task_id=(str(d["parent_task_id"]) if d.get("parent_task_id") else None),
            dependencies=_str_tuple(d.get("dependencies")),
            progress=progress,
            advance_reminders=_int_tuple(d.get("advance_reminders")),
            reminder_strategy=ReminderStrategy.from_dict(d.get("reminder_strategy")),
            persistent_reminder=bool(d.get("persistent_reminder", False)),
            notification_interval=max(1, interval),
            notification_sound=str(d.get("notification_sound") or "default"),
            snooze_until=parse_instant(d.get("snooze_until")),
            snooze_count=snooze_count,
            reminder_sent=bool(d.get("reminder_sent", False)),
            completed_at=parse_instant(d.get("completed_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "description": self.description,
            "reminder_time": format_instant(self.reminder_time),
            "end_time": format_instant(self.end_time),
            "repeat_rule": self.repeat_rule.value,
            "priority": self.priority.value,
            "category": self.category,
            "parent_task_id": self.parent_task_id,
            "dependencies": list(self.dependencies),
            "progress": self.progress,
            "advance_reminders": list(self.advance_reminders),
            "reminder_strategy": self.reminder_strategy.to_dict() if self.reminder_strategy else None,
            "persistent_reminder": self.persistent_reminder,
            "notification_interval": self.notification_interval,
            "notification_sound": self.notification_sound,
            "snooze_until": format_instant(self.snooze_until),
            "snooze_count": self.snooze_count,
            "reminder_sent": self.reminder_sent,
            "completed_at": format_instant(self.completed_at),
        }


@dataclass(slots=True, frozen=True)
class NotificationRule:
    id: str
    title: str = ""
    is_enabled: bool = True
    condition_category: str = ALL
    condition_priority: str = ALL
    action_mute: bool = False
    action_sound: str = "default"
    action_advance_minutes: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> NotificationRule:
        return cls(
            id=str(d.get("id") or ""),
            title=str(d.get("title") or ""),
            is_enabled=bool(d.get("is_enabled", True)),
            condition_category=str(d.get("condition_category") or ALL),
            condition_priority=str(d.get("condition_priority") or ALL),
            action_mute=bool(d.get("action_mute", False)),
            action_sound=str(d.get("action_sound") or "default"),
            action_advance_minutes=_int_tuple(d.get("action_advance_minutes")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "is_enabled": self.is_enabled,
            "condition_category": self.condition_category,
            "condition_priority": self.condition_priority,
            "action_mute": self.action_mute,
            "action_sound": self.action_sound,
            "action_advance_minutes": list(self.action_advance_minutes),
        }


@dataclass(slots=True, frozen=True)
class DndSettings:
    """Do-not-disturb window; times are "HH:MM" strings and may wrap past midnight."""

    enabled: bool = False
    start_time: str = "22:00"
    end_time: str = "08:00"

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> DndSettings:
        if not d:
            return cls()
        return cls(
            enabled=bool(d.get("enabled", False)),
            start_time=str(d.get("start_time") or ""),
            end_time=str(d.get("end_time") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "start_time": self.start_time, "end_time": self.end_time}


@dataclass(slots=True, frozen=True)
class UserProfile:
    id: str = "me"
    dnd_settings: DndSettings = field(default_factory=DndSettings)


@dataclass(slots=True, frozen=True)
class Behavior:
    """One logged user interaction; a recent sample of these drives the neglect check."""

    event_type: str
    task_id: str | None = None
    category: str | None = None
    hour_of_day: int = 0
    day_of_week: int = 0
    created_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def at(cls, event_type: str, now: datetime, task: Task | None = None, **metadata: Any) -> Behavior:
        return cls(
            event_type=event_type,
            task_id=task.id if task else None,
            category=task.category if task else None,
            hour_of_day=now.hour,
            day_of_week=now.isoweekday() % 7,
            created_at=now,
            metadata=dict(metadata),
        )


@dataclass(slots=True, frozen=True)
class CompletionRecord:
    id: int
    task_id: str
    status: str
    completed_at: datetime | None
    created_at: datetime | None