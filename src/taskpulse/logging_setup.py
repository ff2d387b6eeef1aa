# src/taskpulse/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "taskpulse.log"

# HTTP stacks used by the completion-summary client.
NOISY_LIBRARIES = ("httpx", "httpcore", "openai")

# Per-tick and per-query chatter; the file log still gets all of it.
_QUIET_BELOW_INFO = ("taskpulse.reminders.", "taskpulse.tasks.task_store", "taskpulse.connectors.engine_runner")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keeps the console readable while the REPL shares it with notifications:
    - taskpulse logs pass, except the reminder loop and the store below INFO
    - captured Python warnings and third-party loggers need ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("taskpulse."):
            if name.startswith(_QUIET_BELOW_INFO):
                return record.levelno >= logging.INFO
            return True

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskpulse",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
    quiet_libraries: Iterable[str] = NOISY_LIBRARIES,
) -> Path:
    """
    Configure the root logger once, before the engine starts.

    Console: filtered, at `console_level`. File: everything from `file_level` up, rotated
    because the engine is meant to run for days. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = RotatingFileHandler(str(log_file), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    for name in quiet_libraries:
        logging.getLogger(name).setLevel(logging.WARNING)

    # warnings.warn(...) -> 'py.warnings'
    logging.captureWarnings(True)
    return log_file
