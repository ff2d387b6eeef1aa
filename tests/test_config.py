# tests/test_config.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

from taskpulse.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("TASKPULSE_") or name == "OPENROUTER_API_KEY":
            monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    s = Settings.from_env()
    assert s.app_name == "taskpulse"
    assert s.poll_interval_seconds == 30.0
    assert s.snooze_minutes == 15
    assert s.quiet_start == "22:00" and s.quiet_end == "08:00"
    assert s.notification_permission == "granted"
    assert s.tasks_db_path == Path(".local/taskpulse") / "tasks.sqlite3"
    assert s.openrouter_api_key is None
    assert s.llm_models


def test_values_are_read_from_prefixed_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASKPULSE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TASKPULSE_POLL_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("TASKPULSE_CONSOLE_ENABLED", "no")
    monkeypatch.setenv("TASKPULSE_LLM_MODELS", "a/one, b/two c/three")
    monkeypatch.setenv("TASKPULSE_NOTIFICATION_PERMISSION", "Denied")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")

    s = Settings.from_env()
    assert s.tasks_db_path == tmp_path / "tasks.sqlite3"
    assert s.markers_db_path == tmp_path / "markers.sqlite3"
    assert s.poll_interval_seconds == 5.0
    assert s.console_enabled is False
    assert s.llm_models == ["a/one", "b/two", "c/three"]
    assert s.notification_permission == "denied"
    assert s.openrouter_api_key == "sk-test"


def test_malformed_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKPULSE_SNOOZE_MINUTES", "soon")
    monkeypatch.setenv("TASKPULSE_POLL_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("TASKPULSE_ADVANCE_GRACE_MINUTES", "-3")
    monkeypatch.setenv("TASKPULSE_NOTIFICATION_PERMISSION", "maybe")
    monkeypatch.setenv("TASKPULSE_QUIET_START", "   ")

    s = Settings.from_env()
    assert s.snooze_minutes == 15
    assert s.poll_interval_seconds == 30.0
    assert s.advance_grace_minutes == 5
    assert s.notification_permission == "granted"
    assert s.quiet_start == "22:00"
