# tests/test_cascade.py

from __future__ import annotations

from datetime import timedelta

import httpx
import openai
import pytest

from taskpulse.tasks.cascade import (
    CompletionCascade,
    compute_progress,
    dependents_to_unblock,
    round_half_up,
    unmet_dependencies,
)
from taskpulse.tasks.summary import CompletionSummarizer
from taskpulse.tasks.task_cache import TaskCache
from taskpulse.tasks.task_models import RepeatRule, Task, TaskStatus

from .conftest import NOW
from .fakes import FailingLLMClient, FakeLLMClient, FakeTaskService


def _cascade(service: FakeTaskService, clock, **kw) -> CompletionCascade:
    return CompletionCascade(service, TaskCache(service.tasks.values()), clock, **kw)


@pytest.mark.asyncio
async def test_completing_parent_cascades_to_incomplete_subtasks_only(service, clock) -> None:
    earlier = NOW - timedelta(days=1)
    service.tasks.update(
        {
            "p": Task(id="p", title="Move house"),
            "s1": Task(id="s1", title="Pack", parent_task_id="p"),
            "s2": Task(id="s2", title="Van", parent_task_id="p", status=TaskStatus.IN_PROGRESS),
            "s3": Task(id="s3", title="Keys", parent_task_id="p"),
            "s4": Task(id="s4", title="Notice", parent_task_id="p", status=TaskStatus.COMPLETED, completed_at=earlier),
        }
    )
    cascade = _cascade(service, clock)

    result = await cascade.toggle_complete("p")

    assert result.status == TaskStatus.COMPLETED
    assert sorted(result.cascaded) == ["s1", "s2", "s3"]
    assert result.failed_writes == []
    for sid in ("s1", "s2", "s3"):
        assert service.tasks[sid].status == TaskStatus.COMPLETED
        assert service.tasks[sid].completed_at == NOW
    assert service.updates_for("s4") == []
    assert service.tasks["s4"].completed_at == earlier
    assert service.tasks["p"].progress == 100
    assert result.record_created is True
    assert [b.event_type for b in service.logged] == ["task_completed"]


@pytest.mark.asyncio
async def test_dependent_stays_blocked_until_last_dependency_completes(service, clock) -> None:
    service.tasks.update(
        {
            "A": Task(id="A", title="Design", status=TaskStatus.COMPLETED),
            "B": Task(id="B", title="Review"),
            "C": Task(id="C", title="Ship"),
        }
    )
    cascade = _cascade(service, clock)

    c = await cascade.set_dependencies("C", ["A", "B"])
    assert c.status == TaskStatus.BLOCKED
    assert service.tasks["C"].status == TaskStatus.BLOCKED
    assert service.tasks["C"].dependencies == ("A", "B")

    result = await cascade.toggle_complete("B")
    assert result.unblocked == ["C"]
    assert service.tasks["C"].status == TaskStatus.PENDING

    # Re-completing A later does not touch C again.
    await cascade.toggle_complete("A")
    await cascade.toggle_complete("A")
    pending_writes = [f for f in service.updates_for("C") if f.get("status") == TaskStatus.PENDING.value]
    assert len(pending_writes) == 1


@pytest.mark.asyncio
async def test_uncompleting_removes_only_most_recent_record(service, clock) -> None:
    service.tasks["t"] = Task(id="t", title="Run")
    await service.create_completion_record("t", NOW - timedelta(days=2))
    await service.create_completion_record("t", NOW - timedelta(days=1))
    cascade = _cascade(service, clock)

    await cascade.toggle_complete("t")
    assert [r.id for r in service.records] == [1, 2, 3]

    result = await cascade.toggle_complete("t")
    assert result.status == TaskStatus.PENDING
    assert result.record_removed is True
    assert [r.id for r in service.records] == [1, 2]
    assert service.tasks["t"].completed_at is None


@pytest.mark.asyncio
async def test_toggle_subtask_recomputes_parent_progress(service, clock) -> None:
    service.tasks.update(
        {
            "p": Task(id="p", title="Trip"),
            "s1": Task(id="s1", title="Tickets", parent_task_id="p"),
            "s2": Task(id="s2", title="Hotel", parent_task_id="p"),
            "s3": Task(id="s3", title="Bags", parent_task_id="p"),
        }
    )
    cascade = _cascade(service, clock)

    r1 = await cascade.toggle_subtask("s1")
    assert r1.progress_updates == {"p": 33}
    r2 = await cascade.toggle_subtask("s2")
    assert r2.progress_updates == {"p": 67}
    assert service.tasks["p"].progress == 67

    r3 = await cascade.toggle_subtask("s1")
    assert r3.status == TaskStatus.PENDING
    assert service.tasks["p"].progress == 33


@pytest.mark.asyncio
async def test_set_dependencies_edge_cases(service, clock) -> None:
    service.tasks.update(
        {
            "A": Task(id="A", title="A"),
            "done": Task(id="done", title="Done", status=TaskStatus.COMPLETED),
            "X": Task(id="X", title="X", status=TaskStatus.BLOCKED, dependencies=("A",)),
        }
    )
    cascade = _cascade(service, clock)

    # Completed tasks are never forced back to blocked.
    done = await cascade.set_dependencies("done", ["A"])
    assert done.status == TaskStatus.COMPLETED

    # Self references and unknown ids are ignored.
    x = await cascade.set_dependencies("X", ["X", "ghost"])
    assert x.dependencies == ("ghost",)
    assert x.status == TaskStatus.PENDING

    x = await cascade.set_dependencies("X", ["A"])
    assert x.status == TaskStatus.BLOCKED

    x = await cascade.set_dependencies("X", [])
    assert x.status == TaskStatus.PENDING
    assert service.tasks["X"].dependencies == ()


@pytest.mark.asyncio
async def test_recurring_task_stays_pending_but_is_recorded(service, clock) -> None:
    service.tasks["r"] = Task(id="r", title="Floss", repeat_rule=RepeatRule.DAILY, reminder_time=NOW)
    cascade = _cascade(service, clock)

    result = await cascade.toggle_complete("r")
    assert result.status == TaskStatus.PENDING
    assert service.tasks["r"].status == TaskStatus.PENDING
    assert len(service.records) == 1


@pytest.mark.asyncio
async def test_failed_write_does_not_undo_other_updates(service, clock) -> None:
    service.tasks.update(
        {
            "p": Task(id="p", title="Launch"),
            "s1": Task(id="s1", title="Docs", parent_task_id="p"),
            "s2": Task(id="s2", title="Blog", parent_task_id="p"),
        }
    )
    service.fail_updates_for.add("s2")
    cache = TaskCache(service.tasks.values())
    cascade = CompletionCascade(service, cache, clock)

    result = await cascade.toggle_complete("p")
    assert result.failed_writes == ["s2"]
    assert service.tasks["s1"].status == TaskStatus.COMPLETED
    assert service.tasks["s2"].status == TaskStatus.PENDING
    # No rollback of the optimistic view.
    assert cache.get("s2").status == TaskStatus.COMPLETED  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_completion_summary_is_best_effort(service, clock) -> None:
    service.tasks["t"] = Task(id="t", title="Write report")
    notes: list[tuple[str, str]] = []
    llm = FakeLLMClient("Nice work on the report.")
    cascade = _cascade(
        service,
        clock,
        summarizer=CompletionSummarizer(llm),
        on_summary=lambda task, text: notes.append((task.id, text)),
    )

    await cascade.toggle_complete("t")
    await cascade.drain()
    assert notes == [("t", "Nice work on the report.")]
    assert "Task: Write report" in llm.calls[0][0][0]["content"]


@pytest.mark.asyncio
async def test_failing_summary_never_breaks_completion(service, clock) -> None:
    service.tasks["t"] = Task(id="t", title="Write report")
    notes: list[str] = []
    cascade = _cascade(
        service,
        clock,
        summarizer=CompletionSummarizer(FailingLLMClient(RuntimeError("All LLM models failed."))),
        on_summary=lambda task, text: notes.append(text),
    )

    result = await cascade.toggle_complete("t")
    await cascade.drain()
    assert result.status == TaskStatus.COMPLETED
    assert notes == []


def test_summarizer_swallows_rate_limits() -> None:
    request = httpx.Request("POST", "https://example.invalid/chat/completions")
    exc = openai.RateLimitError("slow down", response=httpx.Response(429, request=request), body=None)
    assert CompletionSummarizer(FailingLLMClient(exc)).summarize(Task(id="t", title="x")) is None


@pytest.mark.asyncio
async def test_unknown_task_raises(service, clock) -> None:
    with pytest.raises(ValueError):
        await _cascade(service, clock).toggle_complete("missing")


def test_pure_helpers() -> None:
    tasks = [
        Task(id="A", title="A", status=TaskStatus.COMPLETED),
        Task(id="B", title="B"),
        Task(id="C", title="C", status=TaskStatus.BLOCKED, dependencies=("A", "B", "gone")),
        Task(id="D", title="D", status=TaskStatus.BLOCKED, dependencies=("B",)),
    ]
    by_id = {t.id: t for t in tasks}
    assert unmet_dependencies(by_id["C"], by_id) == ["B"]
    assert [t.id for t in dependents_to_unblock("B", tasks)] == ["C", "D"]
    assert dependents_to_unblock("A", tasks) == []

    assert compute_progress("nobody", tasks) is None
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(66.666) == 67
