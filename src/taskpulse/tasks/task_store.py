# src/taskpulse/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from .task_models import (
    Behavior,
    CompletionRecord,
    DndSettings,
    NotificationRule,
    Task,
    UserProfile,
    format_instant,
    parse_instant,
)

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite-backed TaskService.

    Tasks and rules are stored as one JSON payload per row, so new task fields need
    no schema change. The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - the async TaskService methods run the sync SQL in asyncio.to_thread
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, user_id: str = "me") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._user_id = user_id
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Shutdown hook (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL DEFAULT '{}',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notification_rules (
                    id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL DEFAULT 0,
                    payload TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS behaviors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT NOT NULL,
                    task_id TEXT,
                    category TEXT,
                    hour_of_day INTEGER NOT NULL DEFAULT 0,
                    day_of_week INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    metadata TEXT NOT NULL DEFAULT '{}'
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS completions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'completed',
                    completed_at TEXT,
                    created_at TEXT
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS user_profile (
                    id TEXT PRIMARY KEY,
                    dnd_settings TEXT NOT NULL DEFAULT '{}'
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("payload", "TEXT NOT NULL DEFAULT '{}'")
            add_col("created_at", "REAL NOT NULL DEFAULT 0")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_completions_task ON completions(task_id, id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_behaviors_created ON behaviors(id)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _dump(payload: dict[str, Any]) -> str:
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _load(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
            return val if isinstance(val, dict) else {}
        except Exception:
            return {}

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        payload = self._load(row["payload"])
        payload["id"] = row["id"]
        return Task.from_dict(payload)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> CompletionRecord:
        return CompletionRecord(
            id=int(row["id"]),
            task_id=str(row["task_id"]),
            status=str(row["status"] or "completed"),
            completed_at=parse_instant(row["completed_at"]),
            created_at=parse_instant(row["created_at"]),
        )

    # ---- seeding / sync API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(self, task: Task) -> str:
        """Insert or replace a task."""
        if not task.id or not task.id.strip():
            raise ValueError("task id is required")
        if not task.title or not task.title.strip():
            raise ValueError("title is required")

        now = time.time()
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(id, payload, created_at, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at
                """,
                (task.id, self._dump(task.to_dict()), now, now),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Task saved id=%s status=%s", task.id, task.status.value)
        return task.id

    def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def delete_task(self, task_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def add_rule(self, rule: NotificationRule) -> str:
        """Append a rule; earlier rules win when several match."""
        if not rule.id:
            raise ValueError("rule id is required")
        conn = self._get_conn()
        try:
            (pos,) = conn.execute("SELECT COALESCE(MAX(position), -1) + 1 FROM notification_rules").fetchone()
            conn.execute(
                """
                INSERT INTO notification_rules(id, position, payload) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET payload = excluded.payload
                """,
                (rule.id, int(pos), self._dump(rule.to_dict())),
            )
            conn.commit()
        finally:
            conn.close()
        return rule.id

    def set_dnd_settings(self, dnd: DndSettings) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO user_profile(id, dnd_settings) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET dnd_settings = excluded.dnd_settings
                """,
                (self._user_id, self._dump(dnd.to_dict())),
            )
            conn.commit()
        finally:
            conn.close()

    def list_completion_records(self, task_id: str) -> list[CompletionRecord]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM completions WHERE task_id = ? ORDER BY id ASC",
                (task_id,),
            ).fetchall()
            return [self._row_to_record(r) for r in rows]
        finally:
            conn.close()

    def _list_tasks(self) -> list[Task]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM tasks ORDER BY created_at ASC, id ASC").fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def _list_rules(self) -> list[NotificationRule]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM notification_rules ORDER BY position ASC, id ASC").fetchall()
            out: list[NotificationRule] = []
            for r in rows:
                payload = self._load(r["payload"])
                payload["id"] = r["id"]
                out.append(NotificationRule.from_dict(payload))
            return out
        finally:
            conn.close()

    def _list_recent_behavior(self, limit: int) -> list[Behavior]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM behaviors ORDER BY id DESC LIMIT ?",
                (max(0, int(limit)),),
            ).fetchall()
            return [
                Behavior(
                    event_type=str(r["event_type"]),
                    task_id=r["task_id"],
                    category=r["category"],
                    hour_of_day=int(r["hour_of_day"] or 0),
                    day_of_week=int(r["day_of_week"] or 0),
                    created_at=parse_instant(r["created_at"]),
                    metadata=self._load(r["metadata"]),
                )
                for r in rows
            ]
        finally:
            conn.close()

    def _get_current_user(self) -> UserProfile:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT dnd_settings FROM user_profile WHERE id = ?", (self._user_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return UserProfile(id=self._user_id)
        return UserProfile(id=self._user_id, dnd_settings=DndSettings.from_dict(self._load(row["dnd_settings"])))

    def _update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT payload FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise KeyError(f"Unknown task: {task_id}")

            payload = self._load(row["payload"])
            payload.update(fields)
            payload["id"] = task_id
            # Round-trip through the model so stored payloads stay normalized.
            normalized = Task.from_dict(payload).to_dict()

            conn.execute(
                "UPDATE tasks SET payload = ?, updated_at = ? WHERE id = ?",
                (self._dump(normalized), time.time(), task_id),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(fields))

    def _create_completion_record(self, task_id: str, completed_at: datetime) -> CompletionRecord:
        created = format_instant(datetime.now())
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "INSERT INTO completions(task_id, status, completed_at, created_at) VALUES (?, ?, ?, ?)",
                (task_id, "completed", format_instant(completed_at), created),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for completions insert")
        finally:
            conn.close()
        return CompletionRecord(
            id=int(rowid),
            task_id=task_id,
            status="completed",
            completed_at=completed_at,
            created_at=parse_instant(created),
        )

    def _delete_most_recent_completion_record(self, task_id: str) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT id FROM completions WHERE task_id = ? ORDER BY id DESC LIMIT 1",
                (task_id,),
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM completions WHERE id = ?", (int(row["id"]),))
            conn.commit()
            return True
        finally:
            conn.close()

    def _log_behavior(self, behavior: Behavior) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO behaviors(event_type, task_id, category, hour_of_day, day_of_week, created_at, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    behavior.event_type,
                    behavior.task_id,
                    behavior.category,
                    int(behavior.hour_of_day),
                    int(behavior.day_of_week),
                    format_instant(behavior.created_at),
                    self._dump(behavior.metadata),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- TaskService (async) ----

    async def list_tasks(self) -> list[Task]:
        return await asyncio.to_thread(self._list_tasks)

    async def list_rules(self) -> list[NotificationRule]:
        return await asyncio.to_thread(self._list_rules)

    async def list_recent_behavior(self, limit: int) -> list[Behavior]:
        return await asyncio.to_thread(self._list_recent_behavior, limit)

    async def get_current_user(self) -> UserProfile:
        return await asyncio.to_thread(self._get_current_user)

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        await asyncio.to_thread(self._update_task, task_id, dict(fields))

    async def create_completion_record(self, task_id: str, completed_at: datetime) -> CompletionRecord:
        return await asyncio.to_thread(self._create_completion_record, task_id, completed_at)

    async def delete_most_recent_completion_record(self, task_id: str) -> bool:
        return await asyncio.to_thread(self._delete_most_recent_completion_record, task_id)

    async def log_behavior(self, behavior: Behavior) -> None:
        await asyncio.to_thread(self._log_behavior, behavior)
