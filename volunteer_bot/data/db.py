"""
Volunteer Bot — Volunteer & Event Database.

Volunteers, events and tasks persist in a single SQLite file.
Read-modify-write operations run inside ``BEGIN IMMEDIATE`` transactions so a
command handler and the maintenance job never lose each other's updates.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from volunteer_bot.core.errors import (
    AlreadyAssigned,
    Conflict,
    InvalidArgument,
    NotFound,
    Unauthorized,
)
from volunteer_bot.data.models import (
    Event,
    Task,
    TaskStatus,
    Volunteer,
    VolunteerStatus,
    normalize_handle,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS volunteers (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    handle           TEXT    NOT NULL UNIQUE,
    name             TEXT    NOT NULL,
    status           TEXT    NOT NULL DEFAULT 'pending',
    last_active_at   TEXT    NOT NULL,
    created_at       TEXT    NOT NULL,
    telegram_user_id INTEGER
);

CREATE TABLE IF NOT EXISTS events (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    title         TEXT    NOT NULL,
    scheduled_for TEXT    NOT NULL DEFAULT '',
    finalized     INTEGER NOT NULL DEFAULT 0,
    created_by    INTEGER,
    created_at    TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id    INTEGER NOT NULL REFERENCES events(id),
    description TEXT    NOT NULL,
    status      TEXT    NOT NULL DEFAULT 'open',
    assignee    TEXT
);

CREATE INDEX IF NOT EXISTS idx_tasks_event ON tasks(event_id);
CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee);
"""


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class _SQLiteStore:
    """Connection handling shared by VolunteerDB and EventDB."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from volunteer_bot.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that holds the write lock until commit."""
        conn = sqlite3.connect(self._db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Schema initialized at %s", self._db_path)

    @staticmethod
    def _row_to_volunteer(row: sqlite3.Row) -> Volunteer:
        return Volunteer(
            id=row["id"],
            handle=row["handle"],
            name=row["name"],
            status=VolunteerStatus(row["status"]),
            last_active_at=row["last_active_at"],
            created_at=row["created_at"],
            telegram_user_id=row["telegram_user_id"],
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            event_id=row["event_id"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            assignee=row["assignee"],
        )

    @staticmethod
    def _fetch_task(conn: sqlite3.Connection, task_id: int) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise NotFound(f"Task {task_id} not found.")
        return row

    @staticmethod
    def _fetch_volunteer(conn: sqlite3.Connection, handle: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM volunteers WHERE handle = ?", (handle,)
        ).fetchone()
        if row is None:
            raise NotFound(f"Volunteer {handle} not found.")
        return row


class VolunteerDB(_SQLiteStore):
    """SQLite-backed storage for volunteers."""

    def add_volunteer(
        self,
        handle: str,
        name: str,
        status: VolunteerStatus = VolunteerStatus.PENDING,
    ) -> Volunteer:
        """Register a new volunteer. Raises Conflict if the handle exists."""
        handle = normalize_handle(handle)
        now = _now()
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO volunteers
                        (handle, name, status, last_active_at, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (handle, name, status.value, now, now),
                )
                volunteer_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise Conflict(f"Volunteer {handle} already exists.") from None

        logger.info("Volunteer added: #%d %s '%s' (%s)", volunteer_id, handle, name, status.value)
        return Volunteer(
            id=volunteer_id,
            handle=handle,
            name=name,
            status=status,
            last_active_at=now,
            created_at=now,
        )

    def get_volunteer(self, handle: str) -> Volunteer | None:
        """Fetch a volunteer by handle."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM volunteers WHERE handle = ?",
                (normalize_handle(handle),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_volunteer(row)

    def list_volunteers(self) -> list[Volunteer]:
        """Return all volunteers in the order they were added."""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM volunteers ORDER BY id").fetchall()
        return [self._row_to_volunteer(r) for r in rows]

    def list_reachable(self, statuses: tuple[VolunteerStatus, ...]) -> list[Volunteer]:
        """Volunteers in one of ``statuses`` whose Telegram chat id is known."""
        placeholders = ", ".join("?" for _ in statuses)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM volunteers
                WHERE telegram_user_id IS NOT NULL AND status IN ({placeholders})
                ORDER BY id
                """,
                [s.value for s in statuses],
            ).fetchall()
        return [self._row_to_volunteer(r) for r in rows]

    def delete_volunteer(self, handle: str) -> int:
        """Hard-delete a volunteer and release their tasks.

        Open/assigned tasks go back to ``open``; done tasks keep their status.
        Returns the number of tasks released.
        """
        handle = normalize_handle(handle)
        with self._transaction() as conn:
            self._fetch_volunteer(conn, handle)
            cursor = conn.execute(
                """
                UPDATE tasks
                SET assignee = NULL,
                    status = CASE WHEN status = 'done' THEN 'done' ELSE 'open' END
                WHERE assignee = ?
                """,
                (handle,),
            )
            released = cursor.rowcount
            conn.execute("DELETE FROM volunteers WHERE handle = ?", (handle,))
        logger.info("Volunteer %s removed, %d task(s) released", handle, released)
        return released

    def completed_task_count(self, handle: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM tasks WHERE assignee = ? AND status = 'done'",
                (normalize_handle(handle),),
            ).fetchone()
        return row[0]

    def mark_inactive(self, cutoff: str) -> list[Volunteer]:
        """Set volunteers idle since before ``cutoff`` (ISO datetime) to inactive.

        Returns only the volunteers that actually changed, so repeated runs
        report nothing new.
        """
        changed: list[Volunteer] = []
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM volunteers WHERE status != 'inactive' AND last_active_at < ?",
                (cutoff,),
            ).fetchall()
            for row in rows:
                cursor = conn.execute(
                    "UPDATE volunteers SET status = 'inactive' WHERE id = ? AND status != 'inactive'",
                    (row["id"],),
                )
                if cursor.rowcount:
                    volunteer = self._row_to_volunteer(row)
                    volunteer.status = VolunteerStatus.INACTIVE
                    changed.append(volunteer)
        for volunteer in changed:
            logger.info("Volunteer %s marked inactive", volunteer.handle)
        return changed

    def promote_eligible(self, tenure_cutoff: str, min_completed: int) -> list[Volunteer]:
        """Promote active volunteers who joined before ``tenure_cutoff`` and
        completed at least ``min_completed`` tasks. Returns the promoted ones."""
        promoted: list[Volunteer] = []
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT v.* FROM volunteers v
                WHERE v.status = 'active'
                  AND v.created_at <= ?
                  AND (SELECT COUNT(*) FROM tasks t
                       WHERE t.assignee = v.handle AND t.status = 'done') >= ?
                """,
                (tenure_cutoff, min_completed),
            ).fetchall()
            for row in rows:
                cursor = conn.execute(
                    "UPDATE volunteers SET status = 'lead' WHERE id = ? AND status = 'active'",
                    (row["id"],),
                )
                if cursor.rowcount:
                    volunteer = self._row_to_volunteer(row)
                    volunteer.status = VolunteerStatus.LEAD
                    promoted.append(volunteer)
        for volunteer in promoted:
            logger.info("Volunteer %s promoted to lead", volunteer.handle)
        return promoted


class EventDB(_SQLiteStore):
    """SQLite-backed storage for events and their tasks."""

    @staticmethod
    def _row_to_event(row: sqlite3.Row, tasks: list[Task]) -> Event:
        return Event(
            id=row["id"],
            title=row["title"],
            scheduled_for=row["scheduled_for"],
            finalized=bool(row["finalized"]),
            created_by=row["created_by"],
            created_at=row["created_at"],
            tasks=tasks,
        )

    def _load_tasks(self, conn: sqlite3.Connection, event_id: int) -> list[Task]:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE event_id = ? ORDER BY id", (event_id,)
        ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def create_event(
        self,
        title: str,
        task_descriptions: list[str],
        scheduled_for: str = "",
        created_by: int | None = None,
    ) -> Event:
        """Insert an event together with its tasks in one transaction."""
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO events (title, scheduled_for, finalized, created_by, created_at)
                VALUES (?, ?, 0, ?, ?)
                """,
                (title, scheduled_for, created_by, now),
            )
            event_id = cursor.lastrowid
            for description in task_descriptions:
                conn.execute(
                    "INSERT INTO tasks (event_id, description, status) VALUES (?, ?, 'open')",
                    (event_id, description),
                )
            tasks = self._load_tasks(conn, event_id)

        logger.info("Event created: #%d '%s' with %d task(s)", event_id, title, len(tasks))
        return Event(
            id=event_id,
            title=title,
            scheduled_for=scheduled_for,
            finalized=False,
            created_by=created_by,
            created_at=now,
            tasks=tasks,
        )

    def get_event(self, event_id: int) -> Event | None:
        """Fetch a single event with its tasks."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_event(row, self._load_tasks(conn, event_id))

    def list_events(self, finalized_only: bool = False) -> list[Event]:
        """List events (with tasks) in creation order."""
        query = "SELECT * FROM events"
        if finalized_only:
            query += " WHERE finalized = 1"
        query += " ORDER BY id"
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
            return [self._row_to_event(r, self._load_tasks(conn, r["id"])) for r in rows]

    def get_task(self, task_id: int) -> Task | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks_for(self, handle: str) -> list[Task]:
        """All tasks currently assigned to ``handle``."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE assignee = ? ORDER BY id",
                (normalize_handle(handle),),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def finalize_event(self, event_id: int) -> Event:
        """Set the finalized flag. Irreversible."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
            if row is None:
                raise NotFound(f"Event {event_id} not found.")
            if row["finalized"]:
                raise Conflict(f"Event {event_id} is already finalized.")
            conn.execute("UPDATE events SET finalized = 1 WHERE id = ?", (event_id,))
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
            event = self._row_to_event(row, self._load_tasks(conn, event_id))
        logger.info("Event #%d finalized", event_id)
        return event

    def commit_task(
        self,
        task_id: int,
        handle: str,
        telegram_user_id: int | None = None,
    ) -> tuple[Task, bool]:
        """Let a volunteer sign up for a task.

        Returns ``(task, changed)``; ``changed`` is False when the volunteer
        already holds the task. A successful commit counts as activity.
        """
        handle = normalize_handle(handle)
        with self._transaction() as conn:
            task_row = self._fetch_task(conn, task_id)
            self._fetch_volunteer(conn, handle)

            assignee = task_row["assignee"]
            if assignee == handle:
                return self._row_to_task(task_row), False
            if assignee is not None:
                raise AlreadyAssigned(f"Task {task_id} is already taken by {assignee}.")
            if task_row["status"] == TaskStatus.DONE.value:
                raise InvalidArgument(f"Task {task_id} is already done.")

            conn.execute(
                "UPDATE tasks SET assignee = ?, status = 'assigned' WHERE id = ?",
                (handle, task_id),
            )
            conn.execute(
                """
                UPDATE volunteers
                SET last_active_at = ?,
                    telegram_user_id = COALESCE(?, telegram_user_id),
                    status = CASE WHEN status IN ('pending', 'inactive') THEN 'active' ELSE status END
                WHERE handle = ?
                """,
                (_now(), telegram_user_id, handle),
            )
            task = self._row_to_task(self._fetch_task(conn, task_id))
        logger.info("Task #%d committed by %s", task_id, handle)
        return task, True

    def assign_task(self, task_id: int, handle: str) -> Task:
        """Admin assignment; overwrites any previous assignee."""
        handle = normalize_handle(handle)
        with self._transaction() as conn:
            self._fetch_task(conn, task_id)
            self._fetch_volunteer(conn, handle)
            conn.execute(
                "UPDATE tasks SET assignee = ?, status = 'assigned' WHERE id = ?",
                (handle, task_id),
            )
            task = self._row_to_task(self._fetch_task(conn, task_id))
        logger.info("Task #%d assigned to %s", task_id, handle)
        return task

    def update_task_status(
        self,
        task_id: int,
        status: TaskStatus,
        acting_handle: str | None = None,
    ) -> Task:
        """Change a task's status.

        ``acting_handle`` restricts the change to the task's own assignee
        (used for non-admin callers); ``None`` means an admin is acting.
        """
        with self._transaction() as conn:
            row = self._fetch_task(conn, task_id)
            if acting_handle is not None and row["assignee"] != normalize_handle(acting_handle):
                raise Unauthorized(
                    f"Task {task_id} is not assigned to you. Only admins can update other tasks."
                )
            if status is TaskStatus.OPEN:
                conn.execute(
                    "UPDATE tasks SET status = 'open', assignee = NULL WHERE id = ?",
                    (task_id,),
                )
            elif status is TaskStatus.ASSIGNED and row["assignee"] is None:
                raise InvalidArgument(
                    f"Task {task_id} has no assignee. Use /assign_task instead."
                )
            else:
                conn.execute(
                    "UPDATE tasks SET status = ? WHERE id = ?",
                    (status.value, task_id),
                )
            if status is TaskStatus.DONE and row["assignee"] is not None:
                conn.execute(
                    "UPDATE volunteers SET last_active_at = ? WHERE handle = ?",
                    (_now(), row["assignee"]),
                )
            task = self._row_to_task(self._fetch_task(conn, task_id))
        logger.info("Task #%d status set to %s", task_id, status.value)
        return task
