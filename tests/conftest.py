# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from taskpulse.core.state import AppState
from taskpulse.reminders.emitter import NotificationEmitter
from taskpulse.reminders.marker_store import MemoryMarkerStore
from taskpulse.reminders.scheduler import ReminderEngine
from taskpulse.tasks.task_store import TaskStore

from .fakes import (
    FakeClock,
    FakeLLMClient,
    FakePermissions,
    FakeTaskService,
    RecordingAlertSink,
    RecordingNotificationSink,
    RecordingSoundPlayer,
)

# A Monday, mid-morning: outside the default quiet hours.
NOW = datetime(2026, 3, 2, 10, 0)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture()
def service() -> FakeTaskService:
    return FakeTaskService()


@pytest.fixture()
def markers() -> MemoryMarkerStore:
    return MemoryMarkerStore()


@pytest.fixture()
def permissions() -> FakePermissions:
    return FakePermissions()


@pytest.fixture()
def native() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture()
def alerts() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture()
def sounds() -> RecordingSoundPlayer:
    return RecordingSoundPlayer()


@pytest.fixture()
def emitter(permissions, native, alerts, sounds) -> NotificationEmitter:
    return NotificationEmitter(permissions, native, alerts, sounds)


@pytest.fixture()
def make_engine(service, emitter, clock, markers) -> Callable[..., ReminderEngine]:
    """Engine factory; keyword overrides go straight to ReminderEngine."""

    def _make(**overrides: Any) -> ReminderEngine:
        kwargs: dict[str, Any] = {"clock": clock, "markers": markers, "persistent_minute_seconds": 0.01}
        kwargs.update(overrides)
        return ReminderEngine(service, emitter, **kwargs)

    return _make


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskpulse-test",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        markers_db_path=tmp_path / "markers.sqlite3",
        poll_interval_seconds=30.0,
        snooze_minutes=15,
        quiet_start="22:00",
        quiet_end="08:00",
        notification_permission="granted",
    )


@pytest.fixture()
def state(settings: SimpleNamespace, clock: FakeClock, emitter: NotificationEmitter) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep the real SQLite TaskStore here because its correctness
    is part of what we want to test.
    """
    store = TaskStore(settings.tasks_db_path)
    markers = MemoryMarkerStore()
    engine = ReminderEngine(store, emitter, clock=clock, markers=markers)
    return AppState(
        settings=settings,
        service=store,
        markers=markers,
        clock=clock,
        emitter=emitter,
        engine=engine,
        llm=FakeLLMClient(),
    )
