"""SQLite-backed version store for page snapshots."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from regwatch.exceptions import ConfigurationError, StorageError, VersionOrderError
from regwatch.models.change_type import ChangeType
from regwatch.models.page_version import PageVersion
from regwatch.utils.retry import retry_with_logging

if TYPE_CHECKING:
    from regwatch.services.database import Database

logger = structlog.get_logger(__name__)


def _format_timestamp(value: datetime) -> str:
    """Fixed-width ISO timestamp so stored values sort chronologically as text."""
    return value.isoformat(timespec="microseconds")


class SqliteVersionStore:
    """Repository for page versions in the ``page_versions`` table.

    Insert and eviction run in a single transaction. Lock contention is
    retried; any other SQLite failure surfaces as StorageError.
    """

    def __init__(
        self,
        db: Database,
        max_versions_per_url: int = 10,
        retry_attempts: int = 3,
    ) -> None:
        if max_versions_per_url <= 0:
            msg = "max_versions_per_url must be greater than 0"
            raise ConfigurationError(msg)
        self.db = db
        self.max_versions_per_url = max_versions_per_url
        self.retry_attempts = retry_attempts

    def save_version(self, version: PageVersion, timeout: float | None = None) -> None:
        """Append a version and evict the oldest beyond the retention cap.

        timeout bounds how long lock contention is retried.
        """
        insert = retry_with_logging(max_attempts=self.retry_attempts, max_delay=timeout)(
            self._insert_and_evict
        )
        try:
            evicted = insert(version)
        except sqlite3.Error as exc:
            logger.error("version_save_failed", url=version.url, error=str(exc))
            msg = f"failed to save version for {version.url}: {exc}"
            raise StorageError(msg, url=version.url) from exc

        if evicted:
            logger.debug("versions_evicted", url=version.url, evicted=evicted)

    def _insert_and_evict(self, version: PageVersion) -> int:
        captured_at = _format_timestamp(version.captured_at)
        with self.db.transaction() as cursor:
            latest = cursor.execute(
                """SELECT captured_at FROM page_versions
                   WHERE url = ?
                   ORDER BY captured_at DESC
                   LIMIT 1""",
                (version.url,),
            ).fetchone()
            if latest is not None and latest["captured_at"] >= captured_at:
                msg = f"captured_at {captured_at} is not after latest {latest['captured_at']}"
                raise VersionOrderError(msg, url=version.url)

            cursor.execute(
                """INSERT INTO page_versions
                   (url, content_hash, captured_at, change_from_previous,
                    content_summary, content_length, text_content, html_content, extra)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    version.url,
                    version.content_hash,
                    captured_at,
                    version.change_from_previous.value,
                    version.content_summary,
                    version.content_length,
                    version.text_content,
                    version.html_content,
                    json.dumps(version.extra, sort_keys=True),
                ),
            )
            cursor.execute(
                """DELETE FROM page_versions
                   WHERE url = ?
                   AND id NOT IN (
                       SELECT id FROM page_versions
                       WHERE url = ?
                       ORDER BY captured_at DESC
                       LIMIT ?
                   )""",
                (version.url, version.url, self.max_versions_per_url),
            )
            return cursor.rowcount if cursor.rowcount > 0 else 0

    def get_latest_version(self, url: str) -> PageVersion | None:
        """Most recent version for url, or None if the url was never captured."""
        history = self.get_version_history(url, max_versions=1)
        return history[0] if history else None

    def get_version_history(self, url: str, max_versions: int = 10) -> list[PageVersion]:
        """Versions for url, newest first, at most max_versions."""
        if max_versions <= 0:
            return []
        try:
            rows = self.db.fetchall(
                """SELECT * FROM page_versions
                   WHERE url = ?
                   ORDER BY captured_at DESC
                   LIMIT ?""",
                (url, max_versions),
            )
        except sqlite3.Error as exc:
            logger.error("version_read_failed", url=url, error=str(exc))
            msg = f"failed to read versions for {url}: {exc}"
            raise StorageError(msg, url=url) from exc
        return [self._row_to_version(row) for row in rows]

    def count_versions(self, url: str) -> int:
        """Number of stored versions for url."""
        try:
            row = self.db.fetchone(
                "SELECT COUNT(*) as cnt FROM page_versions WHERE url = ?",
                (url,),
            )
        except sqlite3.Error as exc:
            msg = f"failed to count versions for {url}: {exc}"
            raise StorageError(msg, url=url) from exc
        return row["cnt"] if row else 0

    def list_urls(self) -> list[str]:
        """All urls with at least one stored version, sorted."""
        try:
            rows = self.db.fetchall("SELECT DISTINCT url FROM page_versions ORDER BY url")
        except sqlite3.Error as exc:
            msg = f"failed to list urls: {exc}"
            raise StorageError(msg) from exc
        return [row["url"] for row in rows]

    @staticmethod
    def _row_to_version(row: sqlite3.Row) -> PageVersion:
        return PageVersion(
            id=row["id"],
            url=row["url"],
            content_hash=row["content_hash"],
            captured_at=datetime.fromisoformat(row["captured_at"]),
            text_content=row["text_content"],
            content_summary=row["content_summary"],
            change_from_previous=ChangeType(row["change_from_previous"]),
            html_content=row["html_content"],
            content_length=row["content_length"],
            extra=json.loads(row["extra"] or "{}"),
        )
