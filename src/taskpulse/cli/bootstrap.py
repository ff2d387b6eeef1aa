# src/taskpulse/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/markers/emitter/engine/LLM).
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..connectors.console_connector import (
    ConsoleAlertSink,
    ConsoleNotificationSink,
    SettingsPermissionProvider,
    TerminalBellPlayer,
    print_completion_summary,
)
from ..core.clock import SystemClock
from ..core.ports import Clock, LLMClient
from ..core.state import AppState
from ..llm.client import OpenRouterLLMClient
from ..llm.offline import OfflineLLMClient
from ..reminders.emitter import NotificationEmitter
from ..reminders.marker_store import SqliteMarkerStore
from ..reminders.scheduler import ReminderEngine
from ..tasks.cascade import CompletionCascade
from ..tasks.summary import CompletionSummarizer
from ..tasks.task_cache import TaskCache
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.markers_db_path.parent.mkdir(parents=True, exist_ok=True)


def _create_llm(settings: Settings) -> LLMClient:
    try:
        return OpenRouterLLMClient(settings)
    except Exception as e:
        # No key/base URL: completion notes come from the offline client.
        logger.info("Using offline LLM client: %s", e)
        return OfflineLLMClient()


def create_initial_state(*, settings: Settings | None = None, clock: Clock | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()
    if clock is None:
        clock = SystemClock()

    _ensure_local_dirs(settings)

    service = TaskStore(settings.tasks_db_path)
    markers = SqliteMarkerStore(settings.markers_db_path)
    llm = _create_llm(settings)

    emitter = NotificationEmitter(
        SettingsPermissionProvider(settings.notification_permission),
        ConsoleNotificationSink(),
        ConsoleAlertSink(),
        TerminalBellPlayer(),
        snooze_minutes=settings.snooze_minutes,
    )

    cache = TaskCache()
    cascade = CompletionCascade(
        service,
        cache,
        clock,
        summarizer=CompletionSummarizer(llm) if settings.completion_summary else None,
        on_summary=print_completion_summary,
    )

    engine = ReminderEngine(
        service,
        emitter,
        clock=clock,
        markers=markers,
        cache=cache,
        cascade=cascade,
        interval_seconds=settings.poll_interval_seconds,
        behavior_sample=settings.behavior_sample_size,
        neglect_after_hours=settings.neglect_after_hours,
        advance_grace_minutes=settings.advance_grace_minutes,
        snooze_minutes=settings.snooze_minutes,
        quiet_start=settings.quiet_start,
        quiet_end=settings.quiet_end,
    )

    return AppState(
        settings=settings,
        service=service,
        markers=markers,
        clock=clock,
        emitter=emitter,
        engine=engine,
        llm=llm,
    )
