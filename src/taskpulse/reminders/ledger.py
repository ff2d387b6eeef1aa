# src/taskpulse/reminders/ledger.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

from ..core.ports import MarkerStore

logger = logging.getLogger(__name__)

MARKER_SEPARATOR = "|"
ADVANCE_GRACE_MINUTES = 5


class CheckpointKind(StrEnum):
    PRIMARY = "primary"
    ADVANCE = "advance"
    STRATEGY = "strategy"
    SNOOZE = "snooze"
    DAILY = "daily"
    NEGLECT = "neglect"
    DYNAMIC = "dynamic"


_ONE_SHOT = frozenset({CheckpointKind.NEGLECT, CheckpointKind.DYNAMIC})


@dataclass(slots=True, frozen=True)
class CheckpointKey:
    """
    One potential firing moment of a task.

    - offset:  minutes before due (advance/strategy checkpoints)
    - on_date: calendar day for recurring windows, so yesterday's entry never blocks today
    - at:      the snooze instant a snooze fire belongs to (a new snooze re-arms)
    """

    task_id: str
    kind: CheckpointKind
    offset: int | None = None
    on_date: date | None = None
    at: datetime | None = None


def marker_key(task_id: str, on_date: date) -> str:
    return f"{task_id}{MARKER_SEPARATOR}{on_date.isoformat()}"


def advance_checkpoint_eligible(minutes_until_due: int, offset: int, grace: int = ADVANCE_GRACE_MINUTES) -> bool:
    """
    An advance checkpoint `offset` minutes before due may fire only inside a narrow band:
    0 < minutes_until_due <= offset and minutes_until_due > offset - grace.
    """
    return 0 < minutes_until_due <= offset and minutes_until_due > offset - grace


class DedupLedger:
    """
    Which checkpoints have already been handled.

    In-memory entries live for the engine's lifetime. DAILY entries are also written
    to the durable marker store (task id + ISO date), so a reload on the same day does
    not fire them again.
    """

    def __init__(self, markers: MarkerStore) -> None:
        self._markers = markers
        self._seen: set[CheckpointKey] = set()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, CheckpointKey) and self.seen(key)

    def keys(self) -> frozenset[CheckpointKey]:
        return frozenset(self._seen)

    def seen(self, key: CheckpointKey) -> bool:
        if key in self._seen:
            return True
        if key.kind == CheckpointKind.DAILY and key.on_date is not None:
            try:
                if self._markers.get(marker_key(key.task_id, key.on_date)) is not None:
                    self._seen.add(key)
                    return True
            except Exception:
                logger.exception("Marker store read failed task_id=%s", key.task_id)
        return False

    def record(self, key: CheckpointKey) -> None:
        self._seen.add(key)
        if key.kind == CheckpointKind.DAILY and key.on_date is not None:
            try:
                self._markers.set(marker_key(key.task_id, key.on_date), "1")
            except Exception:
                # The in-memory entry still guards this process.
                logger.exception("Marker store write failed task_id=%s", key.task_id)

    def forget(self, key: CheckpointKey) -> None:
        self._seen.discard(key)

    def forget_task(self, task_id: str) -> int:
        """
        Re-arm a task after a snooze.

        Drops its in-memory firing entries; one-shot kinds (neglect, dynamic) and
        durable daily markers are kept.
        """
        stale = {k for k in self._seen if k.task_id == task_id and k.kind not in _ONE_SHOT}
        self._seen -= stale
        return len(stale)

    def prune(self, active_ids: Iterable[str]) -> int:
        """Drop entries of tasks that are no longer in the active collection."""
        active = set(active_ids)
        stale = {k for k in self._seen if k.task_id not in active}
        self._seen -= stale
        if stale:
            logger.debug("Ledger pruned %d entries", len(stale))
        return len(stale)
