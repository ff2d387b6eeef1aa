# src/taskpulse/llm/offline.py

from __future__ import annotations

from collections.abc import Iterable

from ..core.ports import ChatMessage


class OfflineLLMClient:
    """
    Offline deterministic LLM client used when no external API is configured.

    Behavior:
    - Completion notes -> a short canned congratulation naming the task
    - Anything else -> a hint on how to enable the real client
    """

    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]:
        sp = (system_prompt or "").lower()

        user_text = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_text = m["content"]
                break

        if "productivity coach" in sp:
            title = ""
            for line in user_text.splitlines():
                if line.startswith("Task:"):
                    title = line[len("Task:"):].strip()
                    break
            yield f"Nice work finishing {title or 'that task'}. One less thing on your plate."
            return

        yield (
            "Offline mode: no external LLM is configured.\n"
            "Set TASKPULSE_OPENROUTER_API_KEY (and TASKPULSE_LLM_MODELS) to enable real responses."
        )
