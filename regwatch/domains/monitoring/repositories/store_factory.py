"""Construct the configured version store backend."""

from __future__ import annotations

from typing import TYPE_CHECKING

from regwatch.domains.monitoring.repositories.in_memory_version_store import (
    InMemoryVersionStore,
)
from regwatch.domains.monitoring.repositories.sqlite_version_store import SqliteVersionStore

if TYPE_CHECKING:
    from regwatch.models.config import Settings
    from regwatch.services.database import Database
    from regwatch.services.protocols import VersionStoreProtocol


def create_version_store(
    settings: Settings,
    db: Database | None = None,
) -> VersionStoreProtocol:
    """Build the store selected by ``settings.storage_backend``.

    Retention follows the change detection config: ``max_versions_per_url``,
    or a single version when history storage is disabled.
    """
    retention = settings.change_detection.retention_limit
    if settings.storage_backend == "memory":
        return InMemoryVersionStore(max_versions_per_url=retention)

    if db is None:
        from regwatch.services.database import Database

        db = Database(db_path=settings.database_path, timeout=settings.storage_timeout_seconds)
        db.init_db()
    return SqliteVersionStore(
        db,
        max_versions_per_url=retention,
        retry_attempts=settings.storage_retry_attempts,
    )
