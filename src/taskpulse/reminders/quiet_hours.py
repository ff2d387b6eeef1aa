# src/taskpulse/reminders/quiet_hours.py

from __future__ import annotations

import logging
from datetime import datetime

from ..tasks.task_models import DndSettings

logger = logging.getLogger(__name__)

DEFAULT_QUIET_START = "22:00"
DEFAULT_QUIET_END = "08:00"


def _to_minutes(raw: str | None) -> int | None:
    if not raw:
        return None
    parts = raw.strip().split(":")
    if len(parts) != 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def parse_hhmm(raw: str | None, default: str) -> int:
    """
    "HH:MM" -> minutes since midnight.

    Malformed or missing values fall back to `default`, then to the built-in quiet hours start.
    """
    value = _to_minutes(raw)
    if value is not None:
        return value
    if raw:
        logger.debug("Quiet hours: malformed time %r, using %s", raw, default)
    value = _to_minutes(default)
    if value is not None:
        return value
    return _to_minutes(DEFAULT_QUIET_START) or 0


def in_window(current: int, start: int, end: int) -> bool:
    if start < end:
        return start <= current < end
    # Overnight (or full-day when start == end).
    return current >= start or current < end


def is_quiet(
    now: datetime,
    dnd: DndSettings | None,
    *,
    default_start: str = DEFAULT_QUIET_START,
    default_end: str = DEFAULT_QUIET_END,
) -> bool:
    """True when outbound notifications must be suppressed at `now`."""
    if dnd is None or not dnd.enabled:
        return False

    current = now.hour * 60 + now.minute
    start = parse_hhmm(dnd.start_time, default_start)
    end = parse_hhmm(dnd.end_time, default_end)
    return in_window(current, start, end)
