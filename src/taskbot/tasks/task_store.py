# src/taskbot/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import sqlite3
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from .task_models import (
    Category,
    CategoryNode,
    DuplicateCandidate,
    Priority,
    Reminder,
    Task,
    TaskStats,
    TaskStatus,
    User,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("Personal", "Work")
DEFAULT_DUPLICATE_THRESHOLD = 0.3
OPEN_STATUSES = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)


def _trigrams(text: str) -> set[str]:
    """Trigram set compatible with PostgreSQL pg_trgm (words padded with two leading blanks, one trailing)."""
    out: set[str] = set()
    for word in _WORD_RE.findall((text or "").lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            out.add(padded[i : i + 3])
    return out


def trigram_similarity(a: str, b: str) -> float:
    ta = _trigrams(a)
    tb = _trigrams(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def _to_ts(dt: datetime | None) -> float | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp()


def _from_ts(raw: Any) -> datetime | None:
    if raw is None:
        return None
    return datetime.fromtimestamp(float(raw), tz=UTC)


class TaskStore:
    """
    SQLite data store: users, categories, tasks, reminders.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing task columns
    - add columns with ALTER TABLE only when needed

    Every public method is a coroutine; the SQLite work runs in a worker thread
    (asyncio.to_thread) so one user's query never blocks another user's handling.
    Each call opens its own short-lived connection.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self._count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    transport_id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS categories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    parent_id INTEGER,
                    name TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    status TEXT NOT NULL DEFAULT 'pending',
                    category_id INTEGER,
                    due_at REAL,
                    reminder_at REAL,
                    is_recurring INTEGER NOT NULL DEFAULT 0,
                    recurrence_rule TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS reminders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    remind_at REAL NOT NULL,
                    is_sent INTEGER NOT NULL DEFAULT 0,
                    acknowledged INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): calendar link columns came later.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("calendar_event_id", "TEXT")
            add_col("event_created_by_app", "INTEGER NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_status ON tasks(user_id, status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(user_id, due_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_categories_parent ON categories(user_id, parent_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_reminders_user ON reminders(user_id, is_sent)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            transport_id=str(row["transport_id"]),
            name=str(row["name"] or ""),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        keys = row.keys()
        return Task(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            priority=Priority.from_raw(row["priority"]),
            status=TaskStatus.from_db(row["status"]),
            category_id=int(row["category_id"]) if row["category_id"] is not None else None,
            category_name=row["category_name"] if "category_name" in keys else None,
            due_at=_from_ts(row["due_at"]),
            reminder_at=_from_ts(row["reminder_at"]),
            is_recurring=bool(row["is_recurring"]),
            recurrence_rule=row["recurrence_rule"],
            created_at=_from_ts(row["created_at"]) or datetime.fromtimestamp(0, tz=UTC),
            updated_at=_from_ts(row["updated_at"]) or datetime.fromtimestamp(0, tz=UTC),
            calendar_event_id=row["calendar_event_id"],
            event_created_by_app=bool(row["event_created_by_app"]),
        )

    _TASK_SELECT = (
        "SELECT t.*, c.name AS category_name "
        "FROM tasks t LEFT JOIN categories c ON c.id = t.category_id "
    )

    # ---- users ----

    def _get_or_create_user(self, transport_id: str, display_name: str | None) -> User:
        transport_id = (transport_id or "").strip()
        if not transport_id:
            raise ValueError("transport_id is required")

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM users WHERE transport_id = ?", (transport_id,))
            row = cur.fetchone()
            if row:
                return self._row_to_user(row)

            name = (display_name or "").strip() or f"User-{transport_id[-4:]}"
            now = time.time()
            cur.execute(
                "INSERT INTO users(transport_id, name, created_at) VALUES (?, ?, ?)",
                (transport_id, name, now),
            )
            user_id = int(cur.lastrowid or 0)
            for cat in DEFAULT_CATEGORIES:
                cur.execute(
                    "INSERT INTO categories(user_id, parent_id, name, created_at) VALUES (?, NULL, ?, ?)",
                    (user_id, cat, now),
                )
            conn.commit()
            logger.info("User created id=%s transport_id=%s (default categories seeded)", user_id, transport_id)
            return User(id=user_id, transport_id=transport_id, name=name)
        finally:
            conn.close()

    async def get_or_create_user(self, transport_id: str, display_name: str | None = None) -> User:
        return await asyncio.to_thread(self._get_or_create_user, transport_id, display_name)

    # ---- categories ----

    def _get_categories(self, user_id: int) -> list[Category]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM categories WHERE user_id = ? ORDER BY created_at ASC, id ASC",
                (int(user_id),),
            )
            return [
                Category(
                    id=int(r["id"]),
                    user_id=int(r["user_id"]),
                    name=str(r["name"]),
                    parent_id=int(r["parent_id"]) if r["parent_id"] is not None else None,
                )
                for r in cur.fetchall()
            ]
        finally:
            conn.close()

    async def get_categories(self, user_id: int) -> list[Category]:
        return await asyncio.to_thread(self._get_categories, user_id)

    async def get_category_tree(self, user_id: int) -> list[CategoryNode]:
        cats = await self.get_categories(user_id)
        nodes = {c.id: CategoryNode(id=c.id, name=c.name) for c in cats}
        roots: list[CategoryNode] = []
        for c in cats:
            node = nodes[c.id]
            if c.parent_id is not None and c.parent_id in nodes:
                nodes[c.parent_id].children.append(node)
            else:
                roots.append(node)
        return roots

    def _find_or_create_category(
        self, cur: sqlite3.Cursor, user_id: int, name: str, parent_id: int | None
    ) -> int:
        if parent_id is None:
            cur.execute(
                "SELECT id FROM categories WHERE user_id = ? AND parent_id IS NULL AND lower(name) = lower(?) LIMIT 1",
                (user_id, name),
            )
        else:
            cur.execute(
                "SELECT id FROM categories WHERE user_id = ? AND parent_id = ? AND lower(name) = lower(?) LIMIT 1",
                (user_id, parent_id, name),
            )
        row = cur.fetchone()
        if row:
            return int(row["id"])

        cur.execute(
            "INSERT INTO categories(user_id, parent_id, name, created_at) VALUES (?, ?, ?, ?)",
            (user_id, parent_id, name, time.time()),
        )
        cat_id = int(cur.lastrowid or 0)
        logger.info("Category auto-created id=%s user=%s name=%r parent=%s", cat_id, user_id, name, parent_id)
        return cat_id

    def _resolve_category_path(
        self, user_id: int, category: str | None, subcategory: str | None
    ) -> int | None:
        category = (category or "").strip()
        subcategory = (subcategory or "").strip()
        if not category:
            return None

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            parent_id = self._find_or_create_category(cur, int(user_id), category, None)
            result = parent_id
            if subcategory:
                result = self._find_or_create_category(cur, int(user_id), subcategory, parent_id)
            conn.commit()
            return result
        finally:
            conn.close()

    async def resolve_category_path(
        self, user_id: int, category: str | None, subcategory: str | None = None
    ) -> int | None:
        """Resolve "Category/Subcategory" names to a category id, creating missing ones."""
        return await asyncio.to_thread(self._resolve_category_path, user_id, category, subcategory)

    # ---- tasks ----

    def _count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def _get_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(self._TASK_SELECT + "WHERE t.id = ?", (int(task_id),))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    async def get_task(self, task_id: int) -> Task | None:
        return await asyncio.to_thread(self._get_task, task_id)

    def _add_task(
        self,
        user_id: int,
        title: str,
        description: str | None,
        priority: Priority,
        category_id: int | None,
        due_at: datetime | None,
        reminder_at: datetime | None,
        is_recurring: bool,
        recurrence_rule: str | None,
        calendar_event_id: str | None,
        event_created_by_app: bool,
    ) -> Task:
        if not title or not title.strip():
            raise ValueError("title is required")
        if event_created_by_app and not calendar_event_id:
            raise ValueError("event_created_by_app requires calendar_event_id")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    user_id, title, description, priority, status, category_id,
                    due_at, reminder_at, is_recurring, recurrence_rule,
                    created_at, updated_at, calendar_event_id, event_created_by_app
                )
                VALUES (?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    int(user_id),
                    title.strip(),
                    description,
                    Priority.from_raw(priority).value,
                    category_id,
                    _to_ts(due_at),
                    _to_ts(reminder_at),
                    1 if is_recurring else 0,
                    recurrence_rule,
                    now,
                    now,
                    calendar_event_id,
                    1 if event_created_by_app else 0,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
            logger.debug("Task added id=%s user=%s title=%r event=%s", task_id, user_id, title, calendar_event_id)
        finally:
            conn.close()

        task = self._get_task(task_id)
        if task is None:
            raise RuntimeError(f"Task {task_id} vanished right after insert")
        return task

    async def add_task(
        self,
        *,
        user_id: int,
        title: str,
        description: str | None = None,
        priority: Priority = Priority.MEDIUM,
        category_id: int | None = None,
        due_at: datetime | None = None,
        reminder_at: datetime | None = None,
        is_recurring: bool = False,
        recurrence_rule: str | None = None,
        calendar_event_id: str | None = None,
        event_created_by_app: bool = False,
    ) -> Task:
        return await asyncio.to_thread(
            self._add_task,
            user_id,
            title,
            description,
            priority,
            category_id,
            due_at,
            reminder_at,
            is_recurring,
            recurrence_rule,
            calendar_event_id,
            event_created_by_app,
        )

    def _list_tasks(
        self,
        user_id: int,
        status: TaskStatus | None,
        include_completed: bool,
        due_from: datetime | None,
        due_to: datetime | None,
        category_name: str | None,
        search: str | None,
        limit: int,
    ) -> list[Task]:
        where = ["t.user_id = ?"]
        params: list[Any] = [int(user_id)]

        if status is not None:
            where.append("t.status = ?")
            params.append(status.value)
        elif not include_completed:
            where.append("t.status != 'completed'")

        if due_from is not None:
            where.append("t.due_at >= ?")
            params.append(_to_ts(due_from))
        if due_to is not None:
            where.append("t.due_at <= ?")
            params.append(_to_ts(due_to))

        if category_name:
            # Match the category itself or any of its direct children.
            where.append(
                "(lower(c.name) = lower(?) OR c.parent_id IN "
                "(SELECT id FROM categories WHERE user_id = t.user_id AND lower(name) = lower(?)))"
            )
            params.extend([category_name, category_name])

        if search:
            where.append("lower(t.title) LIKE ?")
            params.append(f"%{search.strip().lower()}%")

        sql = self._TASK_SELECT + "WHERE " + " AND ".join(where) + " ORDER BY t.created_at DESC, t.id DESC LIMIT ?"
        params.append(int(limit))

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    async def list_tasks(
        self,
        user_id: int,
        *,
        status: TaskStatus | None = None,
        include_completed: bool = False,
        due_from: datetime | None = None,
        due_to: datetime | None = None,
        category_name: str | None = None,
        search: str | None = None,
        limit: int = 20,
    ) -> list[Task]:
        return await asyncio.to_thread(
            self._list_tasks,
            user_id,
            status,
            include_completed,
            due_from,
            due_to,
            category_name,
            search,
            limit,
        )

    async def get_recent_tasks(self, user_id: int, limit: int = 20) -> list[Task]:
        """Newest open tasks; the fallback list for numeric references."""
        return await self.list_tasks(user_id, limit=limit)

    async def search_open_tasks(self, user_id: int, text: str, limit: int = 10) -> list[Task]:
        return await self.list_tasks(user_id, search=text, limit=limit)

    def _find_duplicates(self, user_id: int, title: str, threshold: float, limit: int) -> list[DuplicateCandidate]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT id, title FROM tasks WHERE user_id = ? AND status IN (?, ?)",
                (int(user_id), *OPEN_STATUSES),
            )
            rows = cur.fetchall()
        finally:
            conn.close()

        out: list[DuplicateCandidate] = []
        for r in rows:
            score = trigram_similarity(str(r["title"]), title)
            if score > threshold:
                out.append(DuplicateCandidate(task_id=int(r["id"]), title=str(r["title"]), similarity=score))
        out.sort(key=lambda d: d.similarity, reverse=True)
        return out[:limit]

    async def find_duplicates(
        self,
        user_id: int,
        title: str,
        threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        limit: int = 5,
    ) -> list[DuplicateCandidate]:
        """Open tasks whose title similarity to `title` is strictly above `threshold`."""
        return await asyncio.to_thread(self._find_duplicates, user_id, title, threshold, limit)

    def _set_status(self, task_id: int, status: TaskStatus) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, time.time(), int(task_id)),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    async def mark_complete(self, task_id: int) -> bool:
        return await asyncio.to_thread(self._set_status, task_id, TaskStatus.COMPLETED)

    def _update_title(self, task_id: int, title: str) -> bool:
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE tasks SET title = ?, updated_at = ? WHERE id = ?",
                (title, time.time(), int(task_id)),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    async def update_title(self, task_id: int, title: str) -> bool:
        return await asyncio.to_thread(self._update_title, task_id, title)

    def _update_due_date(self, task_id: int, due_at: datetime) -> bool:
        new_ts = _to_ts(due_at)
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT reminder_at FROM tasks WHERE id = ?", (int(task_id),))
            row = cur.fetchone()
            if row is None:
                return False

            new_reminder = None
            if row["reminder_at"] is not None and new_ts is not None:
                new_reminder = new_ts - 30 * 60

            cur.execute(
                "UPDATE tasks SET due_at = ?, reminder_at = ?, updated_at = ? WHERE id = ?",
                (new_ts, new_reminder, now, int(task_id)),
            )
            if new_reminder is not None:
                cur.execute(
                    "UPDATE reminders SET remind_at = ? WHERE task_id = ? AND is_sent = 0",
                    (new_reminder, int(task_id)),
                )
            conn.commit()
            return True
        finally:
            conn.close()

    async def update_due_date(self, task_id: int, due_at: datetime) -> bool:
        """Move a task; unsent reminders follow to 30 minutes before the new due date."""
        return await asyncio.to_thread(self._update_due_date, task_id, due_at)

    def _delete_task(self, task_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM reminders WHERE task_id = ?", (int(task_id),))
            cur.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    async def delete_task(self, task_id: int) -> bool:
        """Local deletion only. Calendar propagation is the guardrail's job."""
        return await asyncio.to_thread(self._delete_task, task_id)

    def _get_task_stats(self, user_id: int) -> TaskStats:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT status, COUNT(*) AS n FROM tasks WHERE user_id = ? GROUP BY status",
                (int(user_id),),
            )
            counts = {str(r["status"]): int(r["n"]) for r in cur.fetchall()}
            return TaskStats(
                pending=counts.get(TaskStatus.PENDING.value, 0),
                in_progress=counts.get(TaskStatus.IN_PROGRESS.value, 0),
                completed=counts.get(TaskStatus.COMPLETED.value, 0),
            )
        finally:
            conn.close()

    async def get_task_stats(self, user_id: int) -> TaskStats:
        return await asyncio.to_thread(self._get_task_stats, user_id)

    # ---- reminders ----

    def _add_reminder(self, task_id: int, user_id: int, remind_at: datetime) -> Reminder:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "INSERT INTO reminders(task_id, user_id, remind_at, is_sent, acknowledged, created_at) "
                "VALUES (?, ?, ?, 0, 0, ?)",
                (int(task_id), int(user_id), _to_ts(remind_at), time.time()),
            )
            conn.commit()
            return Reminder(
                id=int(cur.lastrowid or 0),
                task_id=int(task_id),
                user_id=int(user_id),
                remind_at=_from_ts(_to_ts(remind_at)) or remind_at,
            )
        finally:
            conn.close()

    async def add_reminder(self, task_id: int, user_id: int, remind_at: datetime) -> Reminder:
        return await asyncio.to_thread(self._add_reminder, task_id, user_id, remind_at)

    def _get_upcoming_reminders(self, user_id: int, now: datetime, limit: int) -> list[Reminder]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT r.*, t.title AS task_title
                FROM reminders r JOIN tasks t ON t.id = r.task_id
                WHERE r.user_id = ? AND r.is_sent = 0 AND r.remind_at >= ?
                ORDER BY r.remind_at ASC
                LIMIT ?
                """,
                (int(user_id), _to_ts(now), int(limit)),
            )
            return [
                Reminder(
                    id=int(r["id"]),
                    task_id=int(r["task_id"]),
                    user_id=int(r["user_id"]),
                    remind_at=_from_ts(r["remind_at"]) or now,
                    is_sent=bool(r["is_sent"]),
                    acknowledged=bool(r["acknowledged"]),
                    task_title=r["task_title"],
                )
                for r in cur.fetchall()
            ]
        finally:
            conn.close()

    async def get_upcoming_reminders(
        self, user_id: int, now: datetime | None = None, limit: int = 5
    ) -> list[Reminder]:
        return await asyncio.to_thread(
            self._get_upcoming_reminders, user_id, now or datetime.now(UTC), limit
        )

    def _mark_reminder_sent(self, reminder_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute("UPDATE reminders SET is_sent = 1 WHERE id = ?", (int(reminder_id),))
            conn.commit()
        finally:
            conn.close()

    async def mark_reminder_sent(self, reminder_id: int) -> None:
        await asyncio.to_thread(self._mark_reminder_sent, reminder_id)

    def _acknowledge_reminders(self, user_id: int, since: datetime) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "UPDATE reminders SET acknowledged = 1 "
                "WHERE user_id = ? AND is_sent = 1 AND acknowledged = 0 AND remind_at >= ?",
                (int(user_id), _to_ts(since)),
            )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    async def acknowledge_reminders(self, user_id: int, window: timedelta = timedelta(hours=24)) -> int:
        """Any interaction means the user is active: acknowledge recently sent reminders."""
        since = datetime.now(UTC) - window
        return await asyncio.to_thread(self._acknowledge_reminders, user_id, since)
