# src/taskpulse/tasks/cascade.py

from __future__ import annotations

"""
Completion cascade.

User-triggered automation around task completion:
- completing a task unblocks dependents whose other dependencies are all completed,
- completing a task completes its open subtasks,
- toggling a subtask recomputes the parent's progress,
- editing dependencies recomputes blocked/pending.

Every change is applied to the local TaskCache first (optimistic), then persisted.
Independent writes are gathered; one failing write does not undo the others and
nothing is rolled back locally.
"""

import asyncio
import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import Clock, TaskService
from .summary import CompletionSummarizer
from .task_cache import TaskCache
from .task_models import Behavior, RepeatRule, Task, TaskStatus, format_instant

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CascadeResult:
    task_id: str
    status: TaskStatus
    unblocked: list[str] = field(default_factory=list)
    cascaded: list[str] = field(default_factory=list)
    progress_updates: dict[str, int] = field(default_factory=dict)
    failed_writes: list[str] = field(default_factory=list)
    record_created: bool = False
    record_removed: bool = False


def unmet_dependencies(task: Task, tasks_by_id: dict[str, Task]) -> list[str]:
    """
    Dependency ids that are known and not completed.

    Ids missing from the collection are ignored (deleted tasks do not block forever).
    """
    return [
        dep_id
        for dep_id in task.dependencies
        if dep_id in tasks_by_id and tasks_by_id[dep_id].status != TaskStatus.COMPLETED
    ]


def dependents_to_unblock(completed_id: str, tasks: Iterable[Task]) -> list[Task]:
    """Blocked tasks depending on `completed_id` whose every other dependency is completed."""
    by_id = {t.id: t for t in tasks}
    out: list[Task] = []
    for t in by_id.values():
        if t.id == completed_id or t.status != TaskStatus.BLOCKED or completed_id not in t.dependencies:
            continue
        others = [d for d in t.dependencies if d != completed_id]
        if all(by_id[d].status == TaskStatus.COMPLETED for d in others if d in by_id):
            out.append(t)
    return out


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def compute_progress(parent_id: str, tasks: Iterable[Task]) -> int | None:
    """Percentage of completed subtasks of `parent_id`; None when it has no subtasks."""
    siblings = [t for t in tasks if t.parent_task_id == parent_id]
    if not siblings:
        return None
    done = sum(1 for t in siblings if t.status == TaskStatus.COMPLETED)
    return round_half_up(100 * done / len(siblings))


class CompletionCascade:
    def __init__(
        self,
        service: TaskService,
        cache: TaskCache,
        clock: Clock,
        *,
        summarizer: CompletionSummarizer | None = None,
        on_summary: Callable[[Task, str], None] | None = None,
    ) -> None:
        self._service = service
        self._cache = cache
        self._clock = clock
        self._summarizer = summarizer
        self._on_summary = on_summary
        self._background: set[asyncio.Task[Any]] = set()

    def _require(self, task_id: str) -> Task:
        task = self._cache.get(task_id)
        if task is None:
            raise ValueError(f"Unknown task: {task_id}")
        return task

    async def _write(self, task_id: str, fields: dict[str, Any]) -> bool:
        try:
            await self._service.update_task(task_id, fields)
            return True
        except Exception:
            logger.exception("Task update failed task_id=%s fields=%s", task_id, sorted(fields))
            return False

    async def _write_all(self, writes: list[tuple[str, dict[str, Any]]]) -> list[str]:
        """Persist independent updates concurrently; returns ids whose write failed."""
        if not writes:
            return []
        results = await asyncio.gather(*(self._write(tid, f) for tid, f in writes))
        return [tid for (tid, _), ok in zip(writes, results) if not ok]

    def _progress_write(self, parent_id: str | None) -> tuple[str, dict[str, Any]] | None:
        if not parent_id or parent_id not in self._cache:
            return None
        progress = compute_progress(parent_id, self._cache.all())
        if progress is None:
            return None
        self._cache.apply(parent_id, progress=progress)
        return parent_id, {"progress": progress}

    async def toggle_complete(self, task_id: str) -> CascadeResult:
        """
        Complete a task (or un-complete a completed one) and cascade.

        Recurring tasks stay pending after completion so the habit continues;
        they still get a completion record.
        """
        task = self._require(task_id)
        now = self._clock.now()

        completing = task.status != TaskStatus.COMPLETED
        new_status = TaskStatus.COMPLETED if completing else TaskStatus.PENDING
        if completing and task.repeat_rule != RepeatRule.NONE:
            new_status = TaskStatus.PENDING
        completed_at = now if completing else None

        self._cache.apply(task.id, status=new_status, completed_at=completed_at)
        result = CascadeResult(task_id=task.id, status=new_status)
        writes: list[tuple[str, dict[str, Any]]] = []

        if completing:
            for dep in dependents_to_unblock(task.id, self._cache.all()):
                self._cache.apply(dep.id, status=TaskStatus.PENDING)
                writes.append((dep.id, {"status": TaskStatus.PENDING.value}))
                result.unblocked.append(dep.id)
                logger.info("Task %s unblocked by %s", dep.id, task.id)

            for sub in self._cache.subtasks_of(task.id):
                if sub.status == TaskStatus.COMPLETED:
                    continue
                self._cache.apply(sub.id, status=TaskStatus.COMPLETED, completed_at=now)
                writes.append(
                    (sub.id, {"status": TaskStatus.COMPLETED.value, "completed_at": format_instant(now)})
                )
                result.cascaded.append(sub.id)

        own_fields: dict[str, Any] = {"status": new_status.value, "completed_at": format_instant(completed_at)}
        own_progress = compute_progress(task.id, self._cache.all())
        if own_progress is not None:
            self._cache.apply(task.id, progress=own_progress)
            own_fields["progress"] = own_progress
            result.progress_updates[task.id] = own_progress
        writes.append((task.id, own_fields))

        parent_write = self._progress_write(task.parent_task_id)
        if parent_write is not None:
            writes.append(parent_write)
            result.progress_updates[parent_write[0]] = parent_write[1]["progress"]

        result.failed_writes = await self._write_all(writes)

        if completing:
            try:
                await self._service.create_completion_record(task.id, now)
                result.record_created = True
            except Exception:
                logger.exception("Failed to record completion task_id=%s", task.id)
            await self._log_behavior(Behavior.at("task_completed", now, task))
            self._spawn_summary(task)
        else:
            try:
                result.record_removed = await self._service.delete_most_recent_completion_record(task.id)
            except Exception:
                logger.exception("Failed to remove completion record task_id=%s", task.id)

        logger.info(
            "Task %s -> %s (unblocked=%d cascaded=%d failed_writes=%d)",
            task.id,
            new_status.value,
            len(result.unblocked),
            len(result.cascaded),
            len(result.failed_writes),
        )
        return result

    async def toggle_subtask(self, subtask_id: str) -> CascadeResult:
        """Flip one subtask and recompute its parent's progress."""
        sub = self._require(subtask_id)
        now = self._clock.now()

        new_status = TaskStatus.PENDING if sub.status == TaskStatus.COMPLETED else TaskStatus.COMPLETED
        completed_at = now if new_status == TaskStatus.COMPLETED else None
        self._cache.apply(sub.id, status=new_status, completed_at=completed_at)

        result = CascadeResult(task_id=sub.id, status=new_status)
        if not await self._write(sub.id, {"status": new_status.value, "completed_at": format_instant(completed_at)}):
            result.failed_writes.append(sub.id)

        parent_write = self._progress_write(sub.parent_task_id)
        if parent_write is not None:
            parent_id, fields = parent_write
            result.progress_updates[parent_id] = fields["progress"]
            if not await self._write(parent_id, fields):
                result.failed_writes.append(parent_id)
        return result

    async def set_dependencies(self, task_id: str, dependency_ids: Iterable[str]) -> Task:
        """
        Replace a task's dependency set and recompute blocked/pending.

        Completed (and cancelled) tasks are never forced back to blocked.
        """
        task = self._require(task_id)
        deps = tuple(dict.fromkeys(d for d in dependency_ids if d and d != task.id))

        fields: dict[str, Any] = {"dependencies": list(deps)}
        changes: dict[str, Any] = {"dependencies": deps}

        if not task.is_closed:
            probe = Task(id=task.id, title=task.title, dependencies=deps)
            unmet = unmet_dependencies(probe, {t.id: t for t in self._cache.all()})
            if unmet and task.status != TaskStatus.BLOCKED:
                changes["status"] = TaskStatus.BLOCKED
            elif not unmet and task.status == TaskStatus.BLOCKED:
                changes["status"] = TaskStatus.PENDING
        if "status" in changes:
            fields["status"] = changes["status"].value

        updated = self._cache.apply(task.id, **changes) or task
        await self._write(task.id, fields)
        return updated

    async def _log_behavior(self, behavior: Behavior) -> None:
        try:
            await self._service.log_behavior(behavior)
        except Exception:
            logger.debug("Behavior log failed event=%s", behavior.event_type, exc_info=True)

    def _spawn_summary(self, task: Task) -> None:
        if self._summarizer is None:
            return
        bg = asyncio.create_task(self._summarize(task), name=f"completion-summary:{task.id}")
        self._background.add(bg)
        bg.add_done_callback(self._background.discard)

    async def _summarize(self, task: Task) -> None:
        summarizer = self._summarizer
        if summarizer is None:
            return
        try:
            text = await asyncio.to_thread(summarizer.summarize, task)
        except Exception:
            logger.debug("Completion summary crashed task_id=%s", task.id, exc_info=True)
            return
        if not text:
            return
        logger.info("Completion summary task_id=%s: %s", task.id, text)
        if self._on_summary is not None:
            try:
                self._on_summary(task, text)
            except Exception:
                logger.debug("on_summary callback failed", exc_info=True)

    async def drain(self) -> None:
        """Wait for background enrichment (tests, shutdown)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
