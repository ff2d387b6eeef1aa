# src/taskpulse/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .ports import Clock, LLMClient, MarkerStore

if TYPE_CHECKING:
    from ..connectors.engine_runner import EngineBackgroundRunner
    from ..reminders.emitter import NotificationEmitter
    from ..reminders.scheduler import ReminderEngine
    from ..tasks.cascade import CompletionCascade
    from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    """Everything the CLI and connectors need, wired once by the composition root."""

    # Real Settings in the app; tests pass a SimpleNamespace.
    settings: Any

    service: TaskStore
    markers: MarkerStore
    clock: Clock
    emitter: NotificationEmitter
    engine: ReminderEngine
    llm: LLMClient

    # Set once the engine runs on its background loop.
    runner: EngineBackgroundRunner | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def cascade(self) -> CompletionCascade:
        return self.engine.cascade
