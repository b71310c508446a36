"""SQLite database service."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Generator

logger = structlog.get_logger(__name__)


class Database:
    """SQLite database service with schema management.

    One connection is shared across threads; every statement and transaction
    runs under a re-entrant lock.
    """

    def __init__(self, db_path: str = "data/regwatch.db", timeout: float = 5.0) -> None:
        self.db_path = db_path
        self.timeout = timeout
        self._ensure_directory()
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def _ensure_directory(self) -> None:
        """Ensure the parent directory of the database file exists."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        with self._lock:
            if self._connection is None:
                self._connection = sqlite3.connect(
                    self.db_path,
                    timeout=self.timeout,
                    check_same_thread=False,
                )
                self._connection.row_factory = sqlite3.Row
                self._connection.execute("PRAGMA journal_mode=WAL")
                self._connection.execute("PRAGMA foreign_keys=ON")
            return self._connection

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """Context manager for database transactions."""
        with self._lock:
            conn = self.connection
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def execute(self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement."""
        with self._lock:
            return self.connection.execute(sql, params)

    def fetchone(
        self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()
    ) -> sqlite3.Row | None:
        """Execute and fetch one row."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchone()

    def fetchall(
        self, sql: str, params: tuple[Any, ...] | dict[str, Any] = ()
    ) -> list[sqlite3.Row]:
        """Execute and fetch all rows."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchall()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def init_db(self) -> None:
        """Initialize database schema. Creates all tables and indexes."""
        logger.info("initializing_database", path=self.db_path)

        with self.transaction() as cursor:
            # page_versions table
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS page_versions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    captured_at TEXT NOT NULL,
                    change_from_previous TEXT NOT NULL,
                    content_summary TEXT NOT NULL DEFAULT '',
                    content_length INTEGER NOT NULL DEFAULT 0,
                    text_content TEXT NOT NULL DEFAULT '',
                    html_content TEXT,
                    extra TEXT NOT NULL DEFAULT '{}',
                    UNIQUE(url, captured_at)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_page_versions_url_captured_at"
                " ON page_versions(url, captured_at)"
            )

        logger.info("database_initialized", path=self.db_path)
