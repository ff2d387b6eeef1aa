# src/taskpulse/tasks/task_cache.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from .task_models import Task


class TaskCache:
    """
    Local, eventually consistent view of the task collection.

    Optimistic writes land here first; every successful fetch replaces the whole
    view. There is no rollback when a remote write fails.
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: dict[str, Task] = {t.id: t for t in tasks}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def replace_all(self, tasks: Iterable[Task]) -> None:
        self._tasks = {t.id: t for t in tasks}

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def all(self) -> list[Task]:
        return list(self._tasks.values())

    def ids(self) -> set[str]:
        return set(self._tasks)

    def apply(self, task_id: str, **changes: Any) -> Task | None:
        t = self._tasks.get(task_id)
        if t is None:
            return None
        updated = replace(t, **changes)
        self._tasks[task_id] = updated
        return updated

    def subtasks_of(self, parent_id: str) -> list[Task]:
        return [t for t in self._tasks.values() if t.parent_task_id == parent_id]

    def dependents_of(self, task_id: str) -> list[Task]:
        return [t for t in self._tasks.values() if task_id in t.dependencies]
