# tests/test_emitter.py

from __future__ import annotations

from datetime import datetime

from taskpulse.reminders.emitter import (
    ALERT_DURATION_SECONDS,
    NotificationEmitter,
    Permission,
    advance_payload,
    build_snooze_update,
    plain_payload,
    strategy_payload,
)
from taskpulse.tasks.task_models import MessageType, ReminderStep, Task

from .fakes import (
    BrokenSink,
    FakePermissions,
    RecordingAlertSink,
    RecordingNotificationSink,
    RecordingSoundPlayer,
)


def _task(**kw) -> Task:
    return Task(id="t1", title="Water plants", **kw)


def test_emit_renders_notification_alert_and_sound(emitter, native, alerts, sounds) -> None:
    assert emitter.emit(plain_payload(_task(), "chime")) is True

    (n,) = native.shown
    assert n.title == "⏰ Reminder: Water plants"
    assert n.tag == "t1"
    assert n.require_interaction is False
    assert n.silent is False

    (a,) = alerts.shown
    assert [act.name for act in a.actions] == ["snooze", "complete"]
    assert a.actions[0].minutes == 15
    assert a.duration_seconds == ALERT_DURATION_SECONDS

    assert sounds.played == ["chime"]


def test_persistent_tasks_get_sticky_output(emitter, native, alerts) -> None:
    emitter.emit(plain_payload(_task(persistent_reminder=True), "default"))
    assert native.shown[0].require_interaction is True
    assert alerts.shown[0].duration_seconds is None


def test_silent_sound_plays_nothing(emitter, native, sounds) -> None:
    emitter.emit(plain_payload(_task(), "none"))
    assert native.shown[0].silent is True
    assert sounds.played == []


def test_denied_permission_emits_nothing() -> None:
    native, alerts, sounds = RecordingNotificationSink(), RecordingAlertSink(), RecordingSoundPlayer()
    emitter = NotificationEmitter(FakePermissions(value="denied"), native, alerts, sounds)

    assert emitter.notifications_disabled is True
    assert emitter.emit(plain_payload(_task(), "default")) is False
    assert native.shown == [] and alerts.shown == [] and sounds.played == []


def test_undecided_permission_is_requested_once() -> None:
    perms = FakePermissions(value="default", answer="granted")
    emitter = NotificationEmitter(perms, RecordingNotificationSink(), RecordingAlertSink())
    assert emitter.permission == Permission.DEFAULT

    assert emitter.ensure_permission() == Permission.GRANTED
    assert emitter.ensure_permission() == Permission.GRANTED
    assert perms.requests == 1


def test_unknown_permission_value_counts_as_denied() -> None:
    emitter = NotificationEmitter(FakePermissions(value="unsupported"), RecordingNotificationSink(), RecordingAlertSink())
    assert emitter.notifications_disabled is True


def test_broken_native_sink_does_not_block_alert() -> None:
    alerts = RecordingAlertSink()
    emitter = NotificationEmitter(FakePermissions(), BrokenSink(), alerts)
    assert emitter.emit(plain_payload(_task(), "default")) is True
    assert len(alerts.shown) == 1


def test_strategy_step_message_types_and_custom_text() -> None:
    task = _task(progress=40)
    urgent = strategy_payload(task, ReminderStep(10, MessageType.URGENT), 9, "default")
    assert urgent.title.startswith("🚨")
    assert urgent.body == "Only 9 minutes left!"
    assert urgent.require_interaction is True

    summary = strategy_payload(task, ReminderStep(60, MessageType.SUMMARY), 58, "default")
    assert summary.body == "40% done, due in 58 minutes."

    custom = strategy_payload(task, ReminderStep(30, MessageType.ENCOURAGING, "Grab the can"), 29, "default")
    assert custom.title.startswith("✨")
    assert custom.body == "Grab the can"

    plain = advance_payload(task, 28, "default")
    assert plain.title == "📋 Coming up: Water plants"
    assert plain.body == "28 minutes until due."


def test_snooze_update_fields() -> None:
    now = datetime(2026, 3, 2, 10, 0)
    fields = build_snooze_update(_task(snooze_count=2, reminder_sent=True), now, 15)
    assert fields == {
        "status": "snoozed",
        "snooze_until": "2026-03-02T10:15:00",
        "snooze_count": 3,
        "reminder_sent": False,
    }
