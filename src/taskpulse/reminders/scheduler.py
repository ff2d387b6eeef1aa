# src/taskpulse/reminders/scheduler.py

from __future__ import annotations

"""
Reminder engine.

A polling loop that, every interval_seconds:
- fetches tasks, notification rules, the current user's quiet hours and a recent
  behavior sample,
- evaluates every task against its window, advance checkpoints, the neglect check
  and the dynamic-adjustment hook,
- emits notifications through the NotificationEmitter,
- persists `reminder_sent` (fire-and-forget) for plain single-day fires.

Dedup entries are recorded before any persistence call is issued, so a second tick
never double-fires while a write is still in flight. Evaluation is idempotent: it is
keyed by checkpoints, not by tick count, and safe to re-run from scratch after a reload.

To stop the engine, call stop(): it cancels the loop and every persistent reminder timer.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from ..core.ports import Clock, MarkerStore, TaskService
from ..tasks.cascade import CascadeResult, CompletionCascade
from ..tasks.task_cache import TaskCache
from ..tasks.task_models import (
    Behavior,
    DndSettings,
    NotificationRule,
    Priority,
    Task,
    TaskStatus,
    parse_instant,
)
from .emitter import (
    DEFAULT_SNOOZE_MINUTES,
    NotificationEmitter,
    NotificationPayload,
    advance_payload,
    build_snooze_update,
    neglect_payload,
    plain_payload,
    strategy_payload,
)
from .ledger import (
    ADVANCE_GRACE_MINUTES,
    CheckpointKey,
    CheckpointKind,
    DedupLedger,
    advance_checkpoint_eligible,
)
from .persistent import PersistentReminderManager
from .quiet_hours import DEFAULT_QUIET_END, DEFAULT_QUIET_START, is_quiet
from .rules import match_rule, merged_advance_minutes, resolve_sound
from .windows import Window, WindowKind, compute_window, minutes_until

logger = logging.getLogger(__name__)

NEGLECT_PRIORITIES = (Priority.HIGH, Priority.URGENT)
DYNAMIC_WINDOW_MINUTES = (115, 125)
NEGLECT_SOUND = "urgent"


class FireOutcome(StrEnum):
    DELIVERED = "delivered"
    # Permission not granted: recorded, nothing shown.
    UNDELIVERED = "undelivered"
    MUTED = "muted"
    # Quiet hours: nothing recorded, retried on the next tick.
    SUPPRESSED = "suppressed"


@dataclass(slots=True, frozen=True)
class Firing:
    task_id: str
    key: CheckpointKey
    outcome: FireOutcome
    title: str


class ReminderEngine:
    def __init__(
        self,
        service: TaskService,
        emitter: NotificationEmitter,
        *,
        clock: Clock,
        markers: MarkerStore,
        cache: TaskCache | None = None,
        cascade: CompletionCascade | None = None,
        interval_seconds: float = 30.0,
        behavior_sample: int = 20,
        neglect_after_hours: float = 24.0,
        advance_grace_minutes: int = ADVANCE_GRACE_MINUTES,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        quiet_start: str = DEFAULT_QUIET_START,
        quiet_end: str = DEFAULT_QUIET_END,
        persistent_minute_seconds: float = 60.0,
    ) -> None:
        self._service = service
        self._emitter = emitter
        self._clock = clock
        self._cache = cache if cache is not None else TaskCache()
        self._cascade = cascade if cascade is not None else CompletionCascade(service, self._cache, clock)
        self._ledger = DedupLedger(markers)
        self._persistent = PersistentReminderManager(
            self._cache.get,
            self._persistent_fire,
            minute_seconds=persistent_minute_seconds,
        )

        self._interval_seconds = max(0.01, float(interval_seconds))
        self._behavior_sample = max(1, int(behavior_sample))
        self._neglect_after = timedelta(hours=float(neglect_after_hours))
        self._grace = int(advance_grace_minutes)
        self._snooze_minutes = int(snooze_minutes)
        self._quiet_start = quiet_start
        self._quiet_end = quiet_end

        self._rules: list[NotificationRule] = []
        self._dnd = DndSettings()
        self._behaviors: list[Behavior] = []

        self._loop_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

    # ---- introspection ----

    @property
    def cache(self) -> TaskCache:
        return self._cache

    @property
    def ledger(self) -> DedupLedger:
        return self._ledger

    @property
    def persistent(self) -> PersistentReminderManager:
        return self._persistent

    @property
    def cascade(self) -> CompletionCascade:
        return self._cascade

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def notifications_disabled(self) -> bool:
        return self._emitter.notifications_disabled

    # ---- lifecycle ----

    def start(self) -> asyncio.Task[None]:
        """Start the poll loop on the running event loop (idempotent)."""
        if self._loop_task is not None and not self._loop_task.done():
            return self._loop_task
        self._emitter.ensure_permission()
        self._loop_task = asyncio.create_task(self.run(), name="reminder-engine")
        return self._loop_task

    async def run(self) -> None:
        logger.info("Reminder engine started (interval=%.1fs)", self._interval_seconds)
        try:
            while True:
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Reminder tick failed")
                await asyncio.sleep(self._interval_seconds)
        finally:
            logger.info("Reminder engine loop stopped")

    async def stop(self, *, timeout: float = 5.0) -> None:
        """Tear down: cancel the loop, clear every persistent timer, flush pending writes."""
        t = self._loop_task
        self._loop_task = None
        if t is not None and not t.done():
            t.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await t

        self._persistent.cancel_all()

        pending = [bg for bg in self._background if not bg.done()]
        if pending:
            _done, still_running = await asyncio.wait(pending, timeout=timeout)
            for bg in still_running:
                bg.cancel()
            if still_running:
                logger.warning("Dropped %d in-flight writes on shutdown", len(still_running))

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._cascade.drain(), timeout=timeout)

    # ---- one poll ----

    async def refresh(self) -> bool:
        """
        Pull the current collections.

        Tasks are required; rules, user settings and behavior keep their previous
        values when their fetch fails.
        """
        tasks_r, rules_r, user_r, behaviors_r = await asyncio.gather(
            self._service.list_tasks(),
            self._service.list_rules(),
            self._service.get_current_user(),
            self._service.list_recent_behavior(self._behavior_sample),
            return_exceptions=True,
        )

        if isinstance(tasks_r, BaseException):
            logger.error("list_tasks failed: %s", tasks_r)
            return False
        self._cache.replace_all(tasks_r)

        if isinstance(rules_r, BaseException):
            logger.warning("list_rules failed, keeping %d cached rules: %s", len(self._rules), rules_r)
        else:
            self._rules = list(rules_r)

        if isinstance(user_r, BaseException):
            logger.warning("get_current_user failed, keeping cached quiet hours: %s", user_r)
        else:
            self._dnd = user_r.dnd_settings

        if isinstance(behaviors_r, BaseException):
            logger.warning("list_recent_behavior failed: %s", behaviors_r)
        else:
            self._behaviors = list(behaviors_r)

        return True

    async def tick(self) -> list[Firing]:
        if not await self.refresh():
            return []
        return self.evaluate(self._clock.now())

    def evaluate(self, now: datetime) -> list[Firing]:
        """Evaluate every cached task at `now`. Synchronous; persistence is handed off."""
        tasks = self._cache.all()
        self._ledger.prune(t.id for t in tasks)

        firings: list[Firing] = []
        for task in tasks:
            try:
                firings.extend(self._evaluate_task(task, now))
            except Exception:
                logger.exception("Reminder evaluation failed task_id=%s", task.id)

        delivered = sum(1 for f in firings if f.outcome == FireOutcome.DELIVERED)
        if firings:
            logger.debug("Tick at %s: %d firings (%d delivered)", now.isoformat(), len(firings), delivered)
        return firings

    def _evaluate_task(self, task: Task, now: datetime) -> list[Firing]:
        out: list[Firing] = []

        if task.is_closed:
            self._persistent.cancel(task.id)
            return out

        if task.reminder_time is None:
            return out

        window = compute_window(task, now)
        rule = match_rule(task, self._rules)
        sound = resolve_sound(task, rule)

        def fire(key: CheckpointKey, payload: NotificationPayload, *, persist_sent: bool = False) -> None:
            f = self._fire(key, payload, rule, now, persist_sent=persist_sent)
            if f is not None:
                out.append(f)

        # Primary checkpoint. A set snooze replaces the normal schedule until it fires.
        recurring = window is not None and window.recurring
        if task.snooze_until is not None and recurring:
            if now >= task.snooze_until:
                key = CheckpointKey(task.id, CheckpointKind.SNOOZE, at=task.snooze_until)
                fire(key, plain_payload(task, sound))
                if self._ledger.seen(key):
                    # One snoozed firing, then the daily schedule resumes.
                    self._end_snooze(task)
        elif task.snooze_until is not None:
            if now >= task.snooze_until and not task.reminder_sent:
                fire(
                    CheckpointKey(task.id, CheckpointKind.SNOOZE, at=task.snooze_until),
                    plain_payload(task, sound),
                    persist_sent=True,
                )
        elif window is not None and recurring:
            if now >= window.due:
                fire(
                    CheckpointKey(task.id, CheckpointKind.DAILY, on_date=window.on_date),
                    plain_payload(task, sound),
                )
        elif window is not None:
            if now >= window.due and not task.reminder_sent:
                fire(
                    CheckpointKey(task.id, CheckpointKind.PRIMARY),
                    plain_payload(task, sound),
                    persist_sent=True,
                )

        if window is not None:
            # A pending snooze silences everything until it passes.
            if task.snooze_until is None or now >= task.snooze_until:
                self._evaluate_advance(task, window, rule, sound, now, fire)
                self._resume_persistent(task, window, rule, now)
            self._evaluate_dynamic(task, window, now)

        self._evaluate_neglect(task, window, rule, now, fire)
        return out

    def _end_snooze(self, task: Task) -> None:
        self._cache.apply(task.id, status=TaskStatus.PENDING, snooze_until=None)
        self._spawn(self._persist(task.id, {"status": TaskStatus.PENDING.value, "snooze_until": None}))
        logger.debug("Snooze finished, back on the daily schedule task_id=%s", task.id)

    def _resume_persistent(self, task: Task, window: Window, rule, now: datetime) -> None:
        """Restart the nag timer of a due persistent task whose primary fired in an earlier run."""
        if not task.persistent_reminder or now < window.due:
            return
        if rule is not None and rule.action_mute:
            return
        if window.recurring:
            fired = self._ledger.seen(CheckpointKey(task.id, CheckpointKind.DAILY, on_date=window.on_date))
        else:
            fired = task.reminder_sent
        if fired and self._persistent.ensure(task):
            logger.info("Persistent reminder resumed task_id=%s", task.id)

    def _evaluate_advance(self, task, window: Window, rule, sound: str, now: datetime, fire) -> None:
        m = minutes_until(window.due, now)
        if m <= 0:
            return

        for offset in merged_advance_minutes(task, rule):
            if advance_checkpoint_eligible(m, offset, self._grace):
                fire(
                    CheckpointKey(task.id, CheckpointKind.ADVANCE, offset=offset, on_date=window.on_date),
                    advance_payload(task, m, sound),
                )

        strategy = task.reminder_strategy
        if strategy is None:
            return
        for step in strategy.steps:
            if step.offset_minutes <= 0:
                continue
            if advance_checkpoint_eligible(m, step.offset_minutes, self._grace):
                fire(
                    CheckpointKey(task.id, CheckpointKind.STRATEGY, offset=step.offset_minutes, on_date=window.on_date),
                    strategy_payload(task, step, m, sound),
                )

    def _evaluate_dynamic(self, task: Task, window: Window, now: datetime) -> None:
        # Reserved extension point: visited once per task, emits nothing.
        strategy = task.reminder_strategy
        if strategy is None or not strategy.dynamic_adjustment:
            return
        lo, hi = DYNAMIC_WINDOW_MINUTES
        if not lo <= minutes_until(window.due, now) <= hi:
            return
        key = CheckpointKey(task.id, CheckpointKind.DYNAMIC)
        if self._ledger.seen(key):
            return
        self._ledger.record(key)
        logger.debug("Dynamic adjustment checkpoint visited task_id=%s", task.id)

    def _evaluate_neglect(self, task: Task, window: Window | None, rule, now: datetime, fire) -> None:
        if task.status != TaskStatus.PENDING or task.priority not in NEGLECT_PRIORITIES:
            return
        if window is not None and window.kind == WindowKind.DAILY_INSTANCE:
            return
        if task.snooze_until is not None and task.snooze_until > now:
            return
        if not self._behaviors:
            return
        # Measured from today's due instant; an active multi-day range is never a day late.
        due = window.due if window is not None else task.snooze_until or task.reminder_time
        if due is None or now - due <= self._neglect_after:
            return
        fire(
            CheckpointKey(task.id, CheckpointKind.NEGLECT),
            neglect_payload(task, rule.action_sound if rule is not None else NEGLECT_SOUND),
        )

    def _fire(
        self,
        key: CheckpointKey,
        payload: NotificationPayload,
        rule: NotificationRule | None,
        now: datetime,
        *,
        persist_sent: bool,
    ) -> Firing | None:
        if self._ledger.seen(key):
            return None

        task = payload.task
        if rule is not None and rule.action_mute:
            self._ledger.record(key)
            logger.info("Notification muted by rule %r task_id=%s kind=%s", rule.title or rule.id, task.id, key.kind.value)
            return Firing(task.id, key, FireOutcome.MUTED, payload.title)

        if is_quiet(now, self._dnd, default_start=self._quiet_start, default_end=self._quiet_end):
            # Deferred: nothing recorded, so the next tick after quiet hours fires it.
            logger.debug("Quiet hours: deferred task_id=%s kind=%s", task.id, key.kind.value)
            return Firing(task.id, key, FireOutcome.SUPPRESSED, payload.title)

        self._ledger.record(key)
        delivered = self._emitter.emit(payload)

        if delivered and persist_sent:
            self._cache.apply(task.id, reminder_sent=True)
            self._spawn(self._persist(task.id, {"reminder_sent": True}))

        if task.persistent_reminder and key.kind in (CheckpointKind.PRIMARY, CheckpointKind.SNOOZE, CheckpointKind.DAILY):
            self._persistent.ensure(task)

        return Firing(task.id, key, FireOutcome.DELIVERED if delivered else FireOutcome.UNDELIVERED, payload.title)

    def _persistent_fire(self, task: Task) -> None:
        now = self._clock.now()
        rule = match_rule(task, self._rules)
        if rule is not None and rule.action_mute:
            return
        if is_quiet(now, self._dnd, default_start=self._quiet_start, default_end=self._quiet_end):
            logger.debug("Quiet hours: persistent reminder skipped task_id=%s", task.id)
            return
        self._emitter.emit(plain_payload(task, resolve_sound(task, rule)))

    # ---- background writes ----

    async def flush(self) -> None:
        """Wait for in-flight fire-and-forget writes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, coro) -> None:
        bg = asyncio.create_task(coro)
        self._background.add(bg)
        bg.add_done_callback(self._background.discard)

    async def _persist(self, task_id: str, fields: dict[str, Any]) -> None:
        try:
            await self._service.update_task(task_id, fields)
        except Exception:
            # Local state keeps the optimistic value until the next successful sync.
            logger.exception("Failed to persist task_id=%s fields=%s", task_id, sorted(fields))

    async def _log_behavior(self, behavior: Behavior) -> None:
        try:
            await self._service.log_behavior(behavior)
        except Exception:
            logger.debug("Behavior log failed event=%s", behavior.event_type, exc_info=True)

    # ---- user actions (alert buttons / notification click) ----

    async def snooze(self, task_id: str, minutes: int | None = None) -> Task | None:
        """Push the task's due instant out by `minutes` and re-arm its checkpoints."""
        task = self._cache.get(task_id)
        if task is None:
            logger.warning("snooze: unknown task_id=%s", task_id)
            return None

        minutes = int(minutes or self._snooze_minutes)
        now = self._clock.now()
        fields = build_snooze_update(task, now, minutes)

        updated = self._cache.apply(
            task_id,
            status=TaskStatus.SNOOZED,
            snooze_until=parse_instant(fields["snooze_until"]),
            snooze_count=fields["snooze_count"],
            reminder_sent=False,
        )
        self._ledger.forget_task(task_id)
        logger.info("Task %s snoozed for %d minutes", task_id, minutes)

        await self._persist(task_id, fields)
        await self._log_behavior(Behavior.at("task_snoozed", now, task, snooze_minutes=minutes))
        return updated

    async def complete(self, task_id: str) -> CascadeResult | None:
        """Mark complete from a notification; already completed tasks are left alone."""
        task = self._cache.get(task_id)
        if task is None:
            logger.warning("complete: unknown task_id=%s", task_id)
            return None
        self._persistent.cancel(task_id)
        if task.status == TaskStatus.COMPLETED:
            return None
        return await self._cascade.toggle_complete(task_id)

    def mark_interacted(self, task_id: str) -> None:
        task = self._cache.get(task_id)
        now = self._clock.now()
        self._spawn(self._log_behavior(Behavior.at("notification_interacted", now, task, response_time_seconds=0)))
