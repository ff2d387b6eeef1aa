# src/taskpulse/core/clock.py

from __future__ import annotations

from datetime import datetime


class SystemClock:
    """Wall clock in naive local time (matches how task instants are parsed)."""

    def now(self) -> datetime:
        return datetime.now()
