# tests/test_persistent.py

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from taskpulse.reminders.persistent import PersistentReminderManager
from taskpulse.tasks.task_models import Task, TaskStatus


@pytest.mark.asyncio
async def test_timer_repeats_until_task_is_completed() -> None:
    tasks = {"t1": Task(id="t1", title="Take pills", persistent_reminder=True, notification_interval=1)}
    fired: list[str] = []

    mgr = PersistentReminderManager(tasks.get, lambda t: fired.append(t.id), minute_seconds=0.01)
    assert mgr.ensure(tasks["t1"]) is True
    assert mgr.ensure(tasks["t1"]) is False

    await asyncio.sleep(0.055)
    assert len(fired) >= 3
    assert mgr.active_ids == ["t1"]

    tasks["t1"] = replace(tasks["t1"], status=TaskStatus.COMPLETED)
    await asyncio.sleep(0.03)
    count = len(fired)
    await asyncio.sleep(0.03)

    assert len(fired) == count
    assert mgr.has_timer("t1") is False


@pytest.mark.asyncio
async def test_timer_stops_when_task_disappears() -> None:
    tasks = {"t1": Task(id="t1", title="Call back", persistent_reminder=True)}
    mgr = PersistentReminderManager(tasks.get, lambda t: None, minute_seconds=0.01)
    mgr.ensure(tasks["t1"])
    del tasks["t1"]
    await asyncio.sleep(0.05)
    assert mgr.active_ids == []


@pytest.mark.asyncio
async def test_cancel_all_clears_every_timer() -> None:
    tasks = {f"t{i}": Task(id=f"t{i}", title="x", persistent_reminder=True) for i in range(3)}
    fired: list[str] = []
    mgr = PersistentReminderManager(tasks.get, lambda t: fired.append(t.id), minute_seconds=10.0)
    for t in tasks.values():
        mgr.ensure(t)

    assert mgr.cancel_all() == 3
    await asyncio.sleep(0)
    assert mgr.active_ids == []
    assert fired == []


@pytest.mark.asyncio
async def test_notify_failure_does_not_kill_timer() -> None:
    tasks = {"t1": Task(id="t1", title="x", persistent_reminder=True)}
    calls = 0

    def boom(_t: Task) -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("sink down")

    mgr = PersistentReminderManager(tasks.get, boom, minute_seconds=0.01)
    mgr.ensure(tasks["t1"])
    await asyncio.sleep(0.05)
    assert calls >= 2
    assert mgr.has_timer("t1") is True
    mgr.cancel("t1")
