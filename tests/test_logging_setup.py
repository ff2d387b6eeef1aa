# tests/test_logging_setup.py

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import pytest

from taskpulse.logging_setup import _ConsoleNoiseFilter, setup_logging


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_levels() -> None:
    f = _ConsoleNoiseFilter()
    assert f.filter(_record("taskpulse.cli.commands", logging.DEBUG)) is True
    assert f.filter(_record("taskpulse.reminders.scheduler", logging.DEBUG)) is False
    assert f.filter(_record("taskpulse.reminders.scheduler", logging.INFO)) is True
    assert f.filter(_record("httpx", logging.WARNING)) is False
    assert f.filter(_record("py.warnings", logging.ERROR)) is True


def test_setup_logging_writes_rotating_file(tmp_path, restore_root_logging) -> None:
    log_file = setup_logging(log_dir=tmp_path / "logs")

    assert log_file == tmp_path / "logs" / "taskpulse.log"
    assert any(isinstance(h, RotatingFileHandler) for h in logging.getLogger().handlers)
    assert logging.getLogger("httpx").level == logging.WARNING

    logging.getLogger("taskpulse.reminders.scheduler").debug("tick at %s", "10:00")
    for h in logging.getLogger().handlers:
        h.flush()
    assert "tick at 10:00" in log_file.read_text(encoding="utf-8")
