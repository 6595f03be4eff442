"""
Persistent Store - SQLite-backed record of enrolled users and access events.

Writes go through one writer connection guarded by a mutex. Reads open
short-lived connections against the WAL journal, so the admin interface
can browse while the recognition loop appends.
"""

import logging
import os
import sqlite3
import threading
from contextlib import closing, contextmanager
from typing import Any, Iterator, List, Optional

from ..exceptions import StorageError
from .models import AccessEvent, AccessEventFilter, EventSource, Outcome, User, utc_timestamp


logger = logging.getLogger(__name__)

MAX_QUERY_LIMIT = 10_000


class PersistentStore:
    """Durable users + access log with a single-writer discipline."""

    def __init__(self, db_path: str = "data/smartlock.db", busy_timeout: float = 5.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._write_lock = threading.Lock()
        self._writer: Optional[sqlite3.Connection] = None
        self._closed = False

        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._open()

    # =========================
    # Connection management
    # =========================

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _open(self):
        try:
            self._writer = self._connect()
            self._writer.execute("PRAGMA journal_mode=WAL")
            self._writer.execute("PRAGMA synchronous=FULL")
            self._writer.executescript("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    label INTEGER NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    image_path TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS access_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    label INTEGER,
                    confidence REAL NOT NULL,
                    image_path TEXT,
                    outcome TEXT NOT NULL,
                    source TEXT NOT NULL,
                    image_persist_failed INTEGER NOT NULL DEFAULT 0,
                    error TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_access_timestamp ON access_log(timestamp);
                CREATE INDEX IF NOT EXISTS idx_access_outcome ON access_log(outcome);
                CREATE INDEX IF NOT EXISTS idx_access_label ON access_log(label);
            """)
        except sqlite3.Error as exc:
            if self._writer is not None:
                self._writer.close()
                self._writer = None
            raise StorageError(f"Failed to open database {self.db_path}: {exc}") from exc

        logger.info(f"Initialized store at {self.db_path}")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Serialized write scope.

        Commits on normal exit, rolls back on any exception. sqlite errors
        are re-raised as StorageError.
        """
        with self._write_lock:
            if self._closed or self._writer is None:
                raise StorageError("Store is closed")
            conn = self._writer
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageError(f"Could not begin transaction: {exc}") from exc

            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException as exc:
                if conn.in_transaction:
                    try:
                        conn.execute("ROLLBACK")
                    except sqlite3.Error:
                        logger.exception("Rollback failed")
                if isinstance(exc, sqlite3.Error):
                    raise StorageError(f"Transaction failed: {exc}") from exc
                raise

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StorageError("Store is closed")
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open read connection: {exc}") from exc
        with closing(conn):
            try:
                yield conn
            except sqlite3.Error as exc:
                raise StorageError(f"Read failed: {exc}") from exc

    def close(self):
        """Close after in-flight writes finish. Later writes raise StorageError."""
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
            if self._writer is not None:
                self._writer.close()
                self._writer = None
        logger.info("Store closed")

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================
    # Users
    # =========================

    def enroll_or_update_user(self, label: int, name: str, image_path: Optional[str]) -> User:
        """Upsert keyed by label: re-enrollment updates name and image."""
        now = utc_timestamp()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO users (label, name, image_path, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(label) DO UPDATE SET
                    name = excluded.name,
                    image_path = excluded.image_path,
                    updated_at = excluded.updated_at
                """,
                (int(label), name, image_path, now, now),
            )
            row = conn.execute(
                "SELECT label, name, image_path, created_at, updated_at FROM users WHERE label = ?",
                (int(label),),
            ).fetchone()

        logger.info(f"Enrolled user {label} ({name})")
        return _row_to_user(row)

    def get_user(self, label: int) -> Optional[User]:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT label, name, image_path, created_at, updated_at FROM users WHERE label = ?",
                (int(label),),
            ).fetchone()
        return _row_to_user(row) if row else None

    def list_users(self) -> List[User]:
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT label, name, image_path, created_at, updated_at FROM users ORDER BY label ASC"
            ).fetchall()
        return [_row_to_user(row) for row in rows]

    # =========================
    # Access log
    # =========================

    def append_access_event(self, event: AccessEvent) -> AccessEvent:
        """Append one event; returns it with its row id."""
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO access_log
                (timestamp, label, confidence, image_path, outcome, source, image_persist_failed, error)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.timestamp,
                    event.matched_label,
                    event.confidence,
                    event.captured_image_path,
                    event.outcome.value,
                    event.source.value,
                    int(event.image_persist_failed),
                    event.error,
                ),
            )
            event_id = cursor.lastrowid

        logger.debug(f"Logged access event #{event_id}: {event.outcome.value}")
        return event.with_id(event_id)

    def list_access_events(self, event_filter: Optional[AccessEventFilter] = None) -> List[AccessEvent]:
        """Newest first."""
        event_filter = event_filter or AccessEventFilter()
        sql = """
            SELECT id, timestamp, label, confidence, image_path, outcome, source,
                   image_persist_failed, error
            FROM access_log
            WHERE 1=1
        """
        params: List[Any] = []

        if event_filter.outcome is not None:
            sql += " AND outcome = ?"
            params.append(event_filter.outcome.value)
        if event_filter.label is not None:
            sql += " AND label = ?"
            params.append(int(event_filter.label))
        if event_filter.source is not None:
            sql += " AND source = ?"
            params.append(event_filter.source.value)
        if event_filter.since:
            sql += " AND timestamp >= ?"
            params.append(event_filter.since)
        if event_filter.until:
            sql += " AND timestamp <= ?"
            params.append(event_filter.until)

        limit = max(1, min(MAX_QUERY_LIMIT, int(event_filter.limit)))
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._reader() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [_row_to_event(row) for row in rows]

    def stats(self) -> dict:
        with self._reader() as conn:
            users = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            total = conn.execute("SELECT COUNT(*) FROM access_log").fetchone()[0]
            by_outcome = dict(
                conn.execute("SELECT outcome, COUNT(*) FROM access_log GROUP BY outcome").fetchall()
            )
        return {
            "users": int(users),
            "access_events": int(total),
            "events_by_outcome": by_outcome,
        }


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        label=row["label"],
        name=row["name"],
        image_path=row["image_path"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_event(row: sqlite3.Row) -> AccessEvent:
    return AccessEvent(
        id=row["id"],
        timestamp=row["timestamp"],
        matched_label=row["label"],
        confidence=row["confidence"],
        captured_image_path=row["image_path"],
        outcome=Outcome(row["outcome"]),
        source=EventSource(row["source"]),
        image_persist_failed=bool(row["image_persist_failed"]),
        error=row["error"],
    )
