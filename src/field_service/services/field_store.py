"""SQLite-backed record store for tasks, evidence, sessions, tariffs, and the outbox."""

from __future__ import annotations

import contextlib
import json
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Collection


class DuplicateTaskError(Exception):
    """Raised when attempting to insert a task with a duplicate task_id."""


class DuplicateOpenSessionError(Exception):
    """Raised when a worker already has an open work session."""


class DuplicateRecordError(Exception):
    """Raised when a unique key (slug, worker_id, ...) is already taken."""


_SCHEMA = """
CREATE TABLE IF NOT EXISTS task_types (
    type_id TEXT PRIMARY KEY,
    slug TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    photo_minimum INTEGER,
    requires_before_photos INTEGER,
    default_checklist TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS workers (
    worker_id TEXT PRIMARY KEY,
    full_name TEXT NOT NULL,
    role TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    task_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending',
    assigned_worker_id TEXT NOT NULL,
    created_by TEXT NOT NULL,
    task_type_id TEXT REFERENCES task_types(type_id),
    created_at TEXT NOT NULL,
    started_at TEXT,
    paused_at TEXT,
    total_pause_duration_seconds INTEGER NOT NULL DEFAULT 0
        CHECK (total_pause_duration_seconds >= 0),
    completed_at TEXT,
    submitted_at TEXT,
    approved_at TEXT,
    approved_by TEXT,
    approval_comment TEXT,
    returned_at TEXT,
    revision_comment TEXT,
    photo_minimum_override INTEGER,
    requires_before_override INTEGER,
    start_location TEXT,
    end_location TEXT,
    effective_elapsed_seconds INTEGER,
    updated_at TEXT NOT NULL,
    CHECK ((status = 'paused') = (paused_at IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS idx_tasks_worker ON tasks(assigned_worker_id, status);

CREATE TABLE IF NOT EXISTS checklist_items (
    item_id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    text TEXT NOT NULL,
    position INTEGER NOT NULL,
    is_completed INTEGER NOT NULL DEFAULT 0,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS photos (
    photo_id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    kind TEXT NOT NULL CHECK (kind IN ('before', 'after')),
    photo_url TEXT,
    uploaded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS approval_decisions (
    decision_id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(task_id),
    outcome TEXT NOT NULL,
    comment TEXT,
    decider_id TEXT NOT NULL,
    decided_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS reliability_scores (
    worker_id TEXT PRIMARY KEY,
    tasks_completed INTEGER NOT NULL DEFAULT 0,
    tasks_returned INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notifications (
    notification_id TEXT PRIMARY KEY,
    kind TEXT NOT NULL CHECK (kind IN ('manager', 'worker')),
    task_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    created_at TEXT NOT NULL,
    sent_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_notifications_status ON notifications(status, created_at);

CREATE TABLE IF NOT EXISTS work_sessions (
    session_id TEXT PRIMARY KEY,
    worker_id TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT,
    start_location TEXT,
    end_location TEXT,
    total_hours REAL,
    earnings TEXT,
    earnings_incomplete INTEGER NOT NULL DEFAULT 0
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_work_sessions_one_open
    ON work_sessions(worker_id) WHERE end_time IS NULL;

CREATE TABLE IF NOT EXISTS tariff_rates (
    rate_id TEXT PRIMARY KEY,
    worker_id TEXT NOT NULL,
    day_class TEXT NOT NULL CHECK (day_class IN ('weekday', 'weekend', 'holiday')),
    rate_per_minute TEXT NOT NULL,
    currency TEXT NOT NULL,
    valid_from TEXT NOT NULL,
    valid_to TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tariff_rates_worker ON tariff_rates(worker_id, day_class);

CREATE TABLE IF NOT EXISTS holidays (
    holiday_date TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);
"""

_TASK_BOOL_COLUMNS = ("requires_before_override",)


def _row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {key: row[key] for key in row.keys()}  # noqa: SIM118


def _task_from_row(row: sqlite3.Row) -> dict[str, Any]:
    task = _row_to_dict(row)
    for column in _TASK_BOOL_COLUMNS:
        if task[column] is not None:
            task[column] = bool(task[column])
    return task


class FieldStore:
    """SQLite-backed storage for every record the lifecycle engine reads or writes."""

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "title",
        "description",
        "status",
        "assigned_worker_id",
        "created_by",
        "task_type_id",
        "created_at",
        "started_at",
        "paused_at",
        "total_pause_duration_seconds",
        "completed_at",
        "submitted_at",
        "approved_at",
        "approved_by",
        "approval_comment",
        "returned_at",
        "revision_comment",
        "photo_minimum_override",
        "requires_before_override",
        "start_location",
        "end_location",
        "effective_elapsed_seconds",
        "updated_at",
    )
    # Columns that may be incremented in place by a transition.
    _COUNTER_COLUMNS = frozenset({"total_pause_duration_seconds"})

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(_SCHEMA)
            self._db.commit()

    def _rollback(self) -> None:
        with contextlib.suppress(sqlite3.Error):
            self._db.execute("ROLLBACK")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any], checklist: list[dict[str, Any]]) -> None:
        """Insert a task together with its checklist items."""
        columns = [column for column in self._TASK_COLUMNS if column in task_data]
        placeholders = ", ".join("?" for _ in columns)
        query = f"INSERT INTO tasks ({', '.join(columns)}) VALUES ({placeholders})"  # nosec B608
        values = tuple(task_data[column] for column in columns)

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(query, values)
                self._db.executemany(
                    "INSERT INTO checklist_items "
                    "(item_id, task_id, text, position, is_completed, completed_at) "
                    "VALUES (?, ?, ?, ?, 0, NULL)",
                    [
                        (item["item_id"], task_data["task_id"], item["text"], item["position"])
                        for item in checklist
                    ],
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                if "unique" in str(exc).lower():
                    raise DuplicateTaskError(
                        f"A task with task_id={task_data['task_id']} already exists"
                    ) from exc
                raise
            except Exception:
                self._rollback()
                raise

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        with self._lock:
            row = self._db.execute("SELECT * FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return _task_from_row(row)

    def list_tasks(
        self,
        status: str | None,
        worker_id: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks with optional filters, newest first."""
        query = "SELECT * FROM tasks"
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if worker_id is not None:
            clauses.append("assigned_worker_id = ?")
            params.append(worker_id)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY created_at DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        elif offset is not None:
            query += " LIMIT -1"
        if offset is not None:
            query += " OFFSET ?"
            params.append(offset)

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [_task_from_row(row) for row in rows]

    def list_completed_tasks_between(
        self,
        worker_id: str,
        start: str,
        end: str,
    ) -> list[dict[str, Any]]:
        """Approved tasks of a worker whose work finished in [start, end)."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM tasks WHERE assigned_worker_id = ? AND status = 'completed' "
                "AND completed_at >= ? AND completed_at < ? ORDER BY completed_at",
                (worker_id, start, end),
            ).fetchall()
        return [_task_from_row(row) for row in rows]

    def count_tasks(self) -> int:
        """Count total tasks."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM tasks").fetchone()
        return int(row[0]) if row is not None else 0

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def commit_transition(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str,
        conditions: dict[str, Any] | None = None,
        increments: dict[str, int] | None = None,
        decision: dict[str, Any] | None = None,
        reliability: dict[str, int] | None = None,
        notification: dict[str, Any] | None = None,
    ) -> bool:
        """
        Apply a status transition as one conditional write.

        The task row is only updated if its status still equals expected_status
        and every column in ``conditions`` still holds the given value (None
        means IS NULL). ``increments`` are added to the persisted value rather
        than overwritten. The optional decision, reliability counters, and
        outbox notification are written in the same transaction and only if the
        task row matched.

        Returns:
            True if the transition committed, False if the row had moved on.
        """
        unknown = [
            column
            for column in [*updates, *(conditions or {}), *(increments or {})]
            if column not in self._TASK_COLUMNS
        ]
        if unknown:
            msg = f"Attempted to update unknown task column: {unknown}"
            raise ValueError(msg)
        if increments and any(column not in self._COUNTER_COLUMNS for column in increments):
            msg = "Only counter columns can be incremented"
            raise ValueError(msg)

        set_parts = [f"{column} = ?" for column in updates]
        params: list[object] = list(updates.values())
        for column, delta in (increments or {}).items():
            set_parts.append(f"{column} = {column} + ?")
            params.append(delta)

        query = "UPDATE tasks SET " + ", ".join(set_parts)  # nosec B608
        query += " WHERE task_id = ? AND status = ?"
        params.extend([task_id, expected_status])
        for column, expected in (conditions or {}).items():
            if expected is None:
                query += f" AND {column} IS NULL"
            else:
                query += f" AND {column} = ?"
                params.append(expected)

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                cursor = self._db.execute(query, params)
                if cursor.rowcount == 0:
                    self._rollback()
                    return False

                if decision is not None:
                    self._db.execute(
                        "INSERT INTO approval_decisions "
                        "(decision_id, task_id, outcome, comment, decider_id, decided_at) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        (
                            decision["decision_id"],
                            task_id,
                            decision["outcome"],
                            decision["comment"],
                            decision["decider_id"],
                            decision["decided_at"],
                        ),
                    )

                if reliability is not None:
                    self._db.execute(
                        "INSERT INTO reliability_scores "
                        "(worker_id, tasks_completed, tasks_returned, updated_at) "
                        "VALUES (?, ?, ?, ?) "
                        "ON CONFLICT(worker_id) DO UPDATE SET "
                        "tasks_completed = tasks_completed + excluded.tasks_completed, "
                        "tasks_returned = tasks_returned + excluded.tasks_returned, "
                        "updated_at = excluded.updated_at",
                        (
                            reliability["worker_id"],
                            reliability.get("tasks_completed", 0),
                            reliability.get("tasks_returned", 0),
                            reliability["updated_at"],
                        ),
                    )

                if notification is not None:
                    self._insert_notification(notification)

                self._db.commit()
            except Exception:
                self._rollback()
                raise
        return True

    # ------------------------------------------------------------------
    # Task types and workers
    # ------------------------------------------------------------------

    def insert_task_type(self, task_type: dict[str, Any]) -> None:
        """Insert a task type definition."""
        with self._lock:
            try:
                self._db.execute(
                    "INSERT INTO task_types (type_id, slug, display_name, photo_minimum, "
                    "requires_before_photos, default_checklist, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        task_type["type_id"],
                        task_type["slug"],
                        task_type["display_name"],
                        task_type["photo_minimum"],
                        task_type["requires_before_photos"],
                        json.dumps(task_type["default_checklist"]),
                        task_type["created_at"],
                    ),
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                raise DuplicateRecordError(
                    f"A task type with slug={task_type['slug']} already exists"
                ) from exc

    @staticmethod
    def _task_type_from_row(row: sqlite3.Row) -> dict[str, Any]:
        task_type = _row_to_dict(row)
        task_type["default_checklist"] = json.loads(task_type["default_checklist"])
        if task_type["requires_before_photos"] is not None:
            task_type["requires_before_photos"] = bool(task_type["requires_before_photos"])
        return task_type

    def get_task_type(self, type_id: str) -> dict[str, Any] | None:
        """Fetch a task type by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM task_types WHERE type_id = ?", (type_id,)
            ).fetchone()
        return None if row is None else self._task_type_from_row(row)

    def list_task_types(self) -> list[dict[str, Any]]:
        """List all task types ordered by slug."""
        with self._lock:
            rows = self._db.execute("SELECT * FROM task_types ORDER BY slug").fetchall()
        return [self._task_type_from_row(row) for row in rows]

    def insert_worker(self, worker: dict[str, Any]) -> None:
        """Register a worker (or decider) by ID."""
        with self._lock:
            try:
                self._db.execute(
                    "INSERT INTO workers (worker_id, full_name, role, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (worker["worker_id"], worker["full_name"], worker["role"], worker["created_at"]),
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                raise DuplicateRecordError(
                    f"A worker with worker_id={worker['worker_id']} already exists"
                ) from exc

    def get_worker(self, worker_id: str) -> dict[str, Any] | None:
        """Fetch a worker by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM workers WHERE worker_id = ?", (worker_id,)
            ).fetchone()
        return None if row is None else _row_to_dict(row)

    def get_reliability(self, worker_id: str) -> dict[str, Any]:
        """Completed/returned counters for a worker (zeros if none recorded)."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM reliability_scores WHERE worker_id = ?", (worker_id,)
            ).fetchone()
        if row is None:
            return {"worker_id": worker_id, "tasks_completed": 0, "tasks_returned": 0}
        return _row_to_dict(row)

    # ------------------------------------------------------------------
    # Evidence: photos and checklist
    # ------------------------------------------------------------------

    def insert_photo(self, photo: dict[str, Any], allowed_statuses: Collection[str]) -> bool:
        """
        Record a photo if the task is currently in one of allowed_statuses.

        Returns False (nothing written) if the task is in any other status.
        """
        status_marks = ", ".join("?" for _ in allowed_statuses)
        query = (
            "INSERT INTO photos (photo_id, task_id, kind, photo_url, uploaded_at) "
            "SELECT ?, ?, ?, ?, ? WHERE EXISTS ("
            f"SELECT 1 FROM tasks WHERE task_id = ? AND status IN ({status_marks}))"  # nosec B608
        )
        params = [
            photo["photo_id"],
            photo["task_id"],
            photo["kind"],
            photo["photo_url"],
            photo["uploaded_at"],
            photo["task_id"],
            *allowed_statuses,
        ]
        with self._lock:
            cursor = self._db.execute(query, params)
            self._db.commit()
        return cursor.rowcount > 0

    def get_photos(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all photos for a task sorted by upload time."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM photos WHERE task_id = ? ORDER BY uploaded_at, photo_id",
                (task_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    def get_checklist(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch checklist items for a task in display order."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM checklist_items WHERE task_id = ? ORDER BY position",
                (task_id,),
            ).fetchall()
        items = [_row_to_dict(row) for row in rows]
        for item in items:
            item["is_completed"] = bool(item["is_completed"])
        return items

    def set_checklist_item(
        self,
        task_id: str,
        item_id: str,
        *,
        is_completed: bool,
        completed_at: str | None,
        allowed_statuses: Collection[str],
    ) -> bool:
        """Toggle a checklist item if the task is in one of allowed_statuses."""
        status_marks = ", ".join("?" for _ in allowed_statuses)
        query = (
            "UPDATE checklist_items SET is_completed = ?, completed_at = ? "
            "WHERE item_id = ? AND task_id = ? AND EXISTS ("
            f"SELECT 1 FROM tasks WHERE task_id = ? AND status IN ({status_marks}))"  # nosec B608
        )
        params = [int(is_completed), completed_at, item_id, task_id, task_id, *allowed_statuses]
        with self._lock:
            cursor = self._db.execute(query, params)
            self._db.commit()
        return cursor.rowcount > 0

    def get_checklist_item(self, task_id: str, item_id: str) -> dict[str, Any] | None:
        """Fetch a single checklist item of a task."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM checklist_items WHERE item_id = ? AND task_id = ?",
                (item_id, task_id),
            ).fetchone()
        if row is None:
            return None
        item = _row_to_dict(row)
        item["is_completed"] = bool(item["is_completed"])
        return item

    # ------------------------------------------------------------------
    # Approval decisions
    # ------------------------------------------------------------------

    def list_decisions(self, task_id: str) -> list[dict[str, Any]]:
        """Approval decisions recorded for a task, oldest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM approval_decisions WHERE task_id = ? ORDER BY decided_at",
                (task_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Notification outbox
    # ------------------------------------------------------------------

    def _insert_notification(self, notification: dict[str, Any]) -> None:
        self._db.execute(
            "INSERT INTO notifications "
            "(notification_id, kind, task_id, payload, status, attempts, created_at) "
            "VALUES (?, ?, ?, ?, 'pending', 0, ?)",
            (
                notification["notification_id"],
                notification["kind"],
                notification["task_id"],
                json.dumps(notification["payload"], default=str),
                notification["created_at"],
            ),
        )

    @staticmethod
    def _notification_from_row(row: sqlite3.Row) -> dict[str, Any]:
        notification = _row_to_dict(row)
        notification["payload"] = json.loads(notification["payload"])
        return notification

    def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        """Fetch an outbox row by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM notifications WHERE notification_id = ?", (notification_id,)
            ).fetchone()
        return None if row is None else self._notification_from_row(row)

    def list_notifications(self, task_id: str) -> list[dict[str, Any]]:
        """Outbox rows for a task, oldest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM notifications WHERE task_id = ? ORDER BY created_at",
                (task_id,),
            ).fetchall()
        return [self._notification_from_row(row) for row in rows]

    def list_pending_notifications(self, limit: int) -> list[dict[str, Any]]:
        """Oldest pending outbox rows."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM notifications WHERE status = 'pending' "
                "ORDER BY created_at LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._notification_from_row(row) for row in rows]

    def mark_notification_sent(self, notification_id: str, sent_at: str) -> bool:
        """Mark a pending notification as delivered."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE notifications SET status = 'sent', sent_at = ?, "
                "attempts = attempts + 1, last_error = NULL "
                "WHERE notification_id = ? AND status = 'pending'",
                (sent_at, notification_id),
            )
            self._db.commit()
        return cursor.rowcount > 0

    def record_notification_failure(
        self,
        notification_id: str,
        error: str,
        max_attempts: int,
    ) -> None:
        """Count a failed delivery; give up (status 'failed') after max_attempts."""
        with self._lock:
            self._db.execute(
                "UPDATE notifications SET attempts = attempts + 1, last_error = ?, "
                "status = CASE WHEN attempts + 1 >= ? THEN 'failed' ELSE 'pending' END "
                "WHERE notification_id = ? AND status = 'pending'",
                (error, max_attempts, notification_id),
            )
            self._db.commit()

    def count_notifications_by_status(self) -> dict[str, int]:
        """Count outbox rows grouped by status."""
        with self._lock:
            rows = self._db.execute(
                "SELECT status, COUNT(*) FROM notifications GROUP BY status"
            ).fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Work sessions
    # ------------------------------------------------------------------

    def insert_session(self, session: dict[str, Any]) -> None:
        """Open a work session; a second open session for the worker is rejected."""
        with self._lock:
            try:
                self._db.execute(
                    "INSERT INTO work_sessions "
                    "(session_id, worker_id, start_time, start_location) VALUES (?, ?, ?, ?)",
                    (
                        session["session_id"],
                        session["worker_id"],
                        session["start_time"],
                        session["start_location"],
                    ),
                )
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                raise DuplicateOpenSessionError(
                    f"Worker {session['worker_id']} already has an open work session"
                ) from exc

    @staticmethod
    def _session_from_row(row: sqlite3.Row) -> dict[str, Any]:
        session = _row_to_dict(row)
        session["earnings_incomplete"] = bool(session["earnings_incomplete"])
        return session

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        """Fetch a work session by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM work_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        return None if row is None else self._session_from_row(row)

    def get_open_session(self, worker_id: str) -> dict[str, Any] | None:
        """The worker's open session, if any."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM work_sessions WHERE worker_id = ? AND end_time IS NULL",
                (worker_id,),
            ).fetchone()
        return None if row is None else self._session_from_row(row)

    def close_session(self, session_id: str, updates: dict[str, Any]) -> bool:
        """Write close fields only if the session is still open."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE work_sessions SET end_time = ?, end_location = ?, total_hours = ?, "
                "earnings = ?, earnings_incomplete = ? "
                "WHERE session_id = ? AND end_time IS NULL",
                (
                    updates["end_time"],
                    updates["end_location"],
                    updates["total_hours"],
                    updates["earnings"],
                    int(updates["earnings_incomplete"]),
                    session_id,
                ),
            )
            self._db.commit()
        return cursor.rowcount > 0

    def list_sessions(
        self,
        worker_id: str,
        *,
        closed_only: bool,
        limit: int | None,
    ) -> list[dict[str, Any]]:
        """A worker's sessions, most recent first."""
        query = "SELECT * FROM work_sessions WHERE worker_id = ?"
        params: list[object] = [worker_id]
        if closed_only:
            query += " AND end_time IS NOT NULL"
        query += " ORDER BY start_time DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._session_from_row(row) for row in rows]

    def list_closed_sessions_starting_between(
        self,
        worker_id: str,
        start: str,
        end: str,
    ) -> list[dict[str, Any]]:
        """Closed sessions of a worker whose start_time lies in [start, end)."""
        with self._lock:
            rows = self._db.execute(
                "SELECT * FROM work_sessions WHERE worker_id = ? AND end_time IS NOT NULL "
                "AND start_time >= ? AND start_time < ? ORDER BY start_time",
                (worker_id, start, end),
            ).fetchall()
        return [self._session_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Tariffs and holidays
    # ------------------------------------------------------------------

    def insert_rate(self, rate: dict[str, Any]) -> None:
        """Insert a tariff rate."""
        with self._lock:
            self._db.execute(
                "INSERT INTO tariff_rates (rate_id, worker_id, day_class, rate_per_minute, "
                "currency, valid_from, valid_to, is_active, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    rate["rate_id"],
                    rate["worker_id"],
                    rate["day_class"],
                    str(rate["rate_per_minute"]),
                    rate["currency"],
                    rate["valid_from"],
                    rate["valid_to"],
                    int(rate["is_active"]),
                    rate["created_at"],
                ),
            )
            self._db.commit()

    @staticmethod
    def _rate_from_row(row: sqlite3.Row) -> dict[str, Any]:
        rate = _row_to_dict(row)
        rate["is_active"] = bool(rate["is_active"])
        return rate

    def list_rates(self, worker_id: str, *, active_only: bool) -> list[dict[str, Any]]:
        """Tariff rates of a worker ordered by class then valid_from."""
        query = "SELECT * FROM tariff_rates WHERE worker_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY day_class, valid_from"
        with self._lock:
            rows = self._db.execute(query, (worker_id,)).fetchall()
        return [self._rate_from_row(row) for row in rows]

    def get_rate(self, rate_id: str) -> dict[str, Any] | None:
        """Fetch a tariff rate by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT * FROM tariff_rates WHERE rate_id = ?", (rate_id,)
            ).fetchone()
        return None if row is None else self._rate_from_row(row)

    def deactivate_rate(self, rate_id: str) -> bool:
        """Soft-delete a tariff rate."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE tariff_rates SET is_active = 0 WHERE rate_id = ?", (rate_id,)
            )
            self._db.commit()
        return cursor.rowcount > 0

    def upsert_holiday(self, holiday: dict[str, Any]) -> None:
        """Create or replace a holiday for a calendar date."""
        with self._lock:
            self._db.execute(
                "INSERT INTO holidays (holiday_date, name, is_active) VALUES (?, ?, ?) "
                "ON CONFLICT(holiday_date) DO UPDATE SET "
                "name = excluded.name, is_active = excluded.is_active",
                (holiday["holiday_date"], holiday["name"], int(holiday["is_active"])),
            )
            self._db.commit()

    def list_holidays(self, *, active_only: bool) -> list[dict[str, Any]]:
        """Holidays ordered by date."""
        query = "SELECT * FROM holidays"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY holiday_date"
        with self._lock:
            rows = self._db.execute(query).fetchall()
        holidays = [_row_to_dict(row) for row in rows]
        for holiday in holidays:
            holiday["is_active"] = bool(holiday["is_active"])
        return holidays

    def deactivate_holiday(self, holiday_date: str) -> bool:
        """Soft-delete a holiday."""
        with self._lock:
            cursor = self._db.execute(
                "UPDATE holidays SET is_active = 0 WHERE holiday_date = ?", (holiday_date,)
            )
            self._db.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
