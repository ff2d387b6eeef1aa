# src/taskpulse/reminders/emitter.py

from __future__ import annotations

"""
Notification emitter.

Turns a NotificationPayload into what the user sees:
- a native notification (title/body/tag, sticky for persistent tasks),
- an in-app alert offering "snooze 15 minutes" and "mark complete",
- an optional sound keyed by the resolved sound identifier.

Nothing is shown unless permission is "granted"; the caller is responsible for the
passive "notifications disabled" indicator in that case.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from ..core.ports import AlertSink, NotificationSink, PermissionProvider, SoundPlayer
from ..tasks.task_models import MessageType, ReminderStep, Task, TaskStatus, format_instant
from .ledger import CheckpointKind
from .rules import SILENT_SOUND

logger = logging.getLogger(__name__)

DEFAULT_SNOOZE_MINUTES = 15
ALERT_DURATION_SECONDS = 10.0

MESSAGE_ICONS: dict[MessageType, str] = {
    MessageType.DEFAULT: "⏰",
    MessageType.URGENT: "🚨",
    MessageType.ENCOURAGING: "✨",
    MessageType.SUMMARY: "📊",
}


class Permission(StrEnum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"

    @classmethod
    def from_raw(cls, raw: str | None) -> Permission:
        if not raw:
            return cls.DEFAULT
        try:
            return cls(raw)
        except Exception:
            # Unsupported host: treat like an explicit denial.
            return cls.DENIED


@dataclass(slots=True, frozen=True)
class NotificationPayload:
    """What the scheduler wants to show for one checkpoint."""

    task: Task
    kind: CheckpointKind
    title: str
    body: str
    sound: str = "default"
    require_interaction: bool = False


@dataclass(slots=True, frozen=True)
class NativeNotification:
    title: str
    body: str
    tag: str
    require_interaction: bool
    silent: bool


@dataclass(slots=True, frozen=True)
class AlertAction:
    name: str
    label: str
    minutes: int | None = None


@dataclass(slots=True, frozen=True)
class InAppAlert:
    task_id: str
    title: str
    body: str
    actions: tuple[AlertAction, ...]
    # None keeps the alert on screen until dismissed.
    duration_seconds: float | None


def plain_payload(task: Task, sound: str) -> NotificationPayload:
    return NotificationPayload(
        task=task,
        kind=CheckpointKind.PRIMARY,
        title=f"⏰ Reminder: {task.title}",
        body=task.description or "It's time to work on this task.",
        sound=sound,
        require_interaction=task.persistent_reminder,
    )


def advance_payload(task: Task, minutes: int, sound: str) -> NotificationPayload:
    return NotificationPayload(
        task=task,
        kind=CheckpointKind.ADVANCE,
        title=f"📋 Coming up: {task.title}",
        body=f"{minutes} minutes until due.",
        sound=sound,
        require_interaction=task.persistent_reminder,
    )


def strategy_payload(task: Task, step: ReminderStep, minutes: int, sound: str) -> NotificationPayload:
    icon = MESSAGE_ICONS.get(step.message_type, MESSAGE_ICONS[MessageType.DEFAULT])
    if step.custom_message.strip():
        body = step.custom_message.strip()
    elif step.message_type == MessageType.URGENT:
        body = f"Only {minutes} minutes left!"
    elif step.message_type == MessageType.ENCOURAGING:
        body = f"You've got this. {minutes} minutes to go."
    elif step.message_type == MessageType.SUMMARY:
        body = f"{task.progress}% done, due in {minutes} minutes."
    else:
        body = f"{minutes} minutes until due."
    return NotificationPayload(
        task=task,
        kind=CheckpointKind.STRATEGY,
        title=f"{icon} {task.title}",
        body=body,
        sound=sound,
        require_interaction=task.persistent_reminder or step.message_type == MessageType.URGENT,
    )


def neglect_payload(task: Task, sound: str) -> NotificationPayload:
    return NotificationPayload(
        task=task,
        kind=CheckpointKind.NEGLECT,
        title=f"⚠️ Still waiting: {task.title}",
        body=f"This {task.priority.value} priority task has been overdue for more than a day.",
        sound=sound,
        require_interaction=True,
    )


def build_snooze_update(task: Task, now: datetime, minutes: int = DEFAULT_SNOOZE_MINUTES) -> dict[str, Any]:
    """Fields persisted when the user snoozes a task."""
    return {
        "status": TaskStatus.SNOOZED.value,
        "snooze_until": format_instant(now + timedelta(minutes=max(1, int(minutes)))),
        "snooze_count": task.snooze_count + 1,
        "reminder_sent": False,
    }


class NotificationEmitter:
    def __init__(
        self,
        permissions: PermissionProvider,
        native: NotificationSink,
        alerts: AlertSink,
        sounds: SoundPlayer | None = None,
        *,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
    ) -> None:
        self._permissions = permissions
        self._native = native
        self._alerts = alerts
        self._sounds = sounds
        self._snooze_minutes = snooze_minutes
        self._permission = Permission.from_raw(self._query())

    def _query(self) -> str:
        try:
            return self._permissions.query()
        except Exception:
            logger.exception("Notification permission query failed")
            return Permission.DENIED.value

    @property
    def permission(self) -> Permission:
        return self._permission

    @property
    def notifications_disabled(self) -> bool:
        return self._permission == Permission.DENIED

    def ensure_permission(self) -> Permission:
        """Ask the host once while the permission is still undecided."""
        self._permission = Permission.from_raw(self._query())
        if self._permission == Permission.DEFAULT:
            try:
                self._permission = Permission.from_raw(self._permissions.request())
            except Exception:
                logger.exception("Notification permission request failed")
                self._permission = Permission.DENIED
        if self._permission == Permission.DENIED:
            logger.warning("Notifications are disabled by the host; reminders will not be shown.")
        return self._permission

    def emit(self, payload: NotificationPayload) -> bool:
        """Render the payload. Returns True when something was shown to the user."""
        if self._permission != Permission.GRANTED:
            logger.debug(
                "Notification skipped (permission=%s) task_id=%s kind=%s",
                self._permission.value,
                payload.task.id,
                payload.kind.value,
            )
            return False

        silent = payload.sound == SILENT_SOUND
        try:
            self._native.show(
                NativeNotification(
                    title=payload.title,
                    body=payload.body,
                    tag=payload.task.id,
                    require_interaction=payload.require_interaction,
                    silent=silent,
                )
            )
        except Exception:
            logger.exception("Native notification failed task_id=%s", payload.task.id)

        try:
            self._alerts.show(
                InAppAlert(
                    task_id=payload.task.id,
                    title=payload.task.title,
                    body=payload.body,
                    actions=(
                        AlertAction("snooze", f"Snooze {self._snooze_minutes} min", minutes=self._snooze_minutes),
                        AlertAction("complete", "Mark complete"),
                    ),
                    duration_seconds=None if payload.task.persistent_reminder else ALERT_DURATION_SECONDS,
                )
            )
        except Exception:
            logger.exception("In-app alert failed task_id=%s", payload.task.id)

        if not silent and self._sounds is not None:
            try:
                self._sounds.play(payload.sound)
            except Exception:
                logger.debug("Sound play failed sound=%s", payload.sound, exc_info=True)

        logger.info("Notified task_id=%s kind=%s title=%r", payload.task.id, payload.kind.value, payload.title)
        return True
