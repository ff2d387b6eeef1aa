# src/taskpulse/reminders/rules.py

from __future__ import annotations

from collections.abc import Sequence

from ..tasks.task_models import ALL, NotificationRule, Task

DEFAULT_SOUND = "default"
SILENT_SOUND = "none"


def rule_matches(rule: NotificationRule, task: Task) -> bool:
    if not rule.is_enabled:
        return False
    if rule.condition_category != ALL and rule.condition_category != task.category:
        return False
    if rule.condition_priority != ALL and rule.condition_priority != task.priority.value:
        return False
    return True


def match_rule(task: Task, rules: Sequence[NotificationRule]) -> NotificationRule | None:
    """
    Return the first enabled rule whose category and priority conditions both match.

    List order is the tie-breaker: an earlier rule always wins over a later one,
    even if the later one is more specific.
    """
    for rule in rules:
        if rule_matches(rule, task):
            return rule
    return None


def resolve_sound(task: Task, rule: NotificationRule | None) -> str:
    if rule is not None:
        return rule.action_sound or DEFAULT_SOUND
    return task.notification_sound or DEFAULT_SOUND


def merged_advance_minutes(task: Task, rule: NotificationRule | None) -> list[int]:
    """Task's own advance offsets plus the rule's, de-duplicated and sorted."""
    offsets = set(task.advance_reminders)
    if rule is not None:
        offsets.update(rule.action_advance_minutes)
    return sorted(m for m in offsets if m > 0)
