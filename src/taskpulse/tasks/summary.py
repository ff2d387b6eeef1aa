# src/taskpulse/tasks/summary.py

from __future__ import annotations

import logging

import openai

from ..core.ports import LLMClient
from .task_models import Task

logger = logging.getLogger(__name__)

COMPLETION_SYSTEM_PROMPT = """
You are a productivity coach writing a short note after the user finished a task.

Rules:
- 1–2 sentences, warm and concrete.
- Mention the task by name.
- Address the user as "you".
- No emojis, no lists.
""".strip()


class CompletionSummarizer:
    """Best-effort narrative for a freshly completed task."""

    def __init__(self, llm: LLMClient, *, max_chars: int = 400) -> None:
        self._llm = llm
        self._max_chars = max_chars

    def summarize(self, task: Task) -> str | None:
        """Returns the note, or None on any failure (never raises)."""
        lines = [f"Task: {task.title}", f"Category: {task.category}", f"Priority: {task.priority.value}"]
        if task.description:
            lines.append(f"Notes: {task.description[:600]}")
        if task.snooze_count:
            lines.append(f"Snoozed {task.snooze_count} times before completion.")

        raw = ""
        try:
            for piece in self._llm.stream_chat([{"role": "user", "content": "\n".join(lines)}], COMPLETION_SYSTEM_PROMPT):
                raw += piece
        except openai.RateLimitError as e:
            logger.info("Completion summary rate limited: %s", e)
            return None
        except Exception:
            logger.debug("Completion summary failed task_id=%s", task.id, exc_info=True)
            return None

        text = raw.strip()
        if not text:
            return None
        if len(text) > self._max_chars:
            text = text[: self._max_chars] + "…"
        return text
