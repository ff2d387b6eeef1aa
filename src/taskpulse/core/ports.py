# src/taskpulse/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The reminder engine and the completion cascade depend on Protocols instead of
concrete implementations. This keeps the data service, the notification surface
and the LLM provider swappable and makes testing easier.
"""

from datetime import datetime
from typing import Any, Iterable, Protocol

from ..tasks.task_models import Behavior, CompletionRecord, NotificationRule, Task, UserProfile

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class Clock(Protocol):
    """Source of "now" (naive local time)."""

    def now(self) -> datetime: ...


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI/OpenRouter-compatible)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


class TaskService(Protocol):
    """
    Remote data store contract.

    Every call may suspend on I/O. Mutations are partial: `fields` holds only
    the keys that change, in the same JSON-friendly shape as Task.to_dict().
    """

    async def list_tasks(self) -> list[Task]: ...
    async def list_rules(self) -> list[NotificationRule]: ...
    async def list_recent_behavior(self, limit: int) -> list[Behavior]: ...
    async def get_current_user(self) -> UserProfile: ...

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None: ...
    async def create_completion_record(self, task_id: str, completed_at: datetime) -> CompletionRecord: ...
    async def delete_most_recent_completion_record(self, task_id: str) -> bool: ...
    async def log_behavior(self, behavior: Behavior) -> None: ...


class MarkerStore(Protocol):
    """Durable string -> string store (per origin, no expiry)."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class PermissionProvider(Protocol):
    """Host notification permission model: "default" | "granted" | "denied"."""

    def query(self) -> str: ...
    def request(self) -> str: ...


class NotificationSink(Protocol):
    """Renders a native (system) notification."""

    def show(self, notification: Any) -> None: ...


class AlertSink(Protocol):
    """Renders an in-app actionable alert (toast with snooze/complete buttons)."""

    def show(self, alert: Any) -> None: ...


class SoundPlayer(Protocol):
    def play(self, sound: str) -> None: ...
