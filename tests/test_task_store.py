# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from datetime import datetime

import pytest

from taskpulse.tasks.task_models import (
    Behavior,
    DndSettings,
    NotificationRule,
    Priority,
    ReminderStep,
    ReminderStrategy,
    Task,
    TaskStatus,
)
from taskpulse.tasks.task_store import TaskStore

WHEN = datetime(2026, 3, 2, 9, 30)


@pytest.fixture()
def store(tmp_path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3")


@pytest.mark.asyncio
async def test_tasks_roundtrip_with_nested_fields(store: TaskStore) -> None:
    task = Task(
        id="t1",
        title="Dentist",
        reminder_time=WHEN,
        priority=Priority.HIGH,
        dependencies=("t0",),
        advance_reminders=(30, 10),
        reminder_strategy=ReminderStrategy(steps=(ReminderStep(15),), dynamic_adjustment=True),
    )
    store.add_task(task)

    (loaded,) = await store.list_tasks()
    assert loaded == task
    assert store.count_tasks() == 1


@pytest.mark.asyncio
async def test_update_task_merges_partial_fields(store: TaskStore) -> None:
    store.add_task(Task(id="t1", title="Pay rent", reminder_time=WHEN, snooze_count=1))

    await store.update_task("t1", {"status": "snoozed", "snooze_until": "2026-03-02T09:45:00", "snooze_count": 2})

    t = store.get_task("t1")
    assert t is not None
    assert t.status == TaskStatus.SNOOZED
    assert t.snooze_until == datetime(2026, 3, 2, 9, 45)
    assert t.snooze_count == 2
    assert t.reminder_time == WHEN
    assert t.title == "Pay rent"


@pytest.mark.asyncio
async def test_update_unknown_task_raises(store: TaskStore) -> None:
    with pytest.raises(KeyError):
        await store.update_task("missing", {"reminder_sent": True})


def test_add_task_validates_input(store: TaskStore) -> None:
    with pytest.raises(ValueError):
        store.add_task(Task(id="", title="x"))
    with pytest.raises(ValueError):
        store.add_task(Task(id="t1", title="  "))


@pytest.mark.asyncio
async def test_rules_keep_insertion_order(store: TaskStore) -> None:
    store.add_rule(NotificationRule(id="z", condition_category="work"))
    store.add_rule(NotificationRule(id="a", action_mute=True, action_advance_minutes=(5,)))

    rules = await store.list_rules()
    assert [r.id for r in rules] == ["z", "a"]
    assert rules[1].action_mute is True
    assert rules[1].action_advance_minutes == (5,)


@pytest.mark.asyncio
async def test_current_user_dnd_defaults_and_updates(store: TaskStore) -> None:
    user = await store.get_current_user()
    assert user.dnd_settings.enabled is False

    store.set_dnd_settings(DndSettings(enabled=True, start_time="23:00", end_time="07:00"))
    user = await store.get_current_user()
    assert user.dnd_settings == DndSettings(enabled=True, start_time="23:00", end_time="07:00")


@pytest.mark.asyncio
async def test_completion_records_undo_most_recent_only(store: TaskStore) -> None:
    store.add_task(Task(id="t1", title="Run"))
    first = await store.create_completion_record("t1", WHEN)
    second = await store.create_completion_record("t1", WHEN.replace(hour=18))
    await store.create_completion_record("other", WHEN)

    assert await store.delete_most_recent_completion_record("t1") is True
    assert [r.id for r in store.list_completion_records("t1")] == [first.id]
    assert second.id != first.id

    assert await store.delete_most_recent_completion_record("t1") is True
    assert await store.delete_most_recent_completion_record("t1") is False
    assert len(store.list_completion_records("other")) == 1


@pytest.mark.asyncio
async def test_recent_behavior_is_newest_first_and_limited(store: TaskStore) -> None:
    for hour in (8, 9, 10):
        await store.log_behavior(Behavior.at("task_snoozed", WHEN.replace(hour=hour), snooze_minutes=15))

    recent = await store.list_recent_behavior(2)
    assert [b.hour_of_day for b in recent] == [10, 9]
    assert recent[0].metadata == {"snooze_minutes": 15}


def test_schema_migration_adds_missing_columns(tmp_path) -> None:
    path = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(str(path))
    conn.execute("CREATE TABLE tasks (id TEXT PRIMARY KEY, payload TEXT NOT NULL DEFAULT '{}')")
    conn.execute("""INSERT INTO tasks(id, payload) VALUES ('legacy', '{"title": "Old one"}')""")
    conn.commit()
    conn.close()

    store = TaskStore(path)
    t = store.get_task("legacy")
    assert t is not None and t.title == "Old one"
    assert store.delete_task("legacy") is True
