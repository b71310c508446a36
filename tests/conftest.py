"""Shared test fixtures for regulatory page change detection."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
import structlog

from regwatch.domains.monitoring.repositories.in_memory_version_store import (
    InMemoryVersionStore,
)
from regwatch.domains.monitoring.repositories.sqlite_version_store import SqliteVersionStore
from regwatch.models.config import ChangeDetectionConfig
from regwatch.services.database import Database

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


URL = "https://regulator.example.gov/licensing/conditions"

BASE_TEXT = (
    "Licence conditions for operators\n\n"
    "Operators submit an annual report to the authority.\n\n"
    "The annual fee is 500 pounds and is due in April.\n\n"
    "Contact the licensing team for guidance on renewals."
)

PENALTY_TEXT = (
    "Licence conditions for operators\n\n"
    "Operators submit an annual report to the authority.\n\n"
    "The annual fee is 500 pounds and is due in April. A penalty applies for late payment.\n\n"
    "Contact the licensing team for guidance on renewals."
)


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """CLI tests reconfigure structlog against captured streams; restore defaults."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    """Provide a temporary database file path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def db(tmp_db_path: str) -> Iterator[Database]:
    """Provide an initialized temporary database."""
    database = Database(db_path=tmp_db_path)
    database.init_db()
    yield database
    database.close()


@pytest.fixture
def config() -> ChangeDetectionConfig:
    """Detection config with a short minimum length for small test documents."""
    return ChangeDetectionConfig.load(min_content_length=10)


@pytest.fixture
def memory_store() -> InMemoryVersionStore:
    """Provide an empty in-memory version store."""
    return InMemoryVersionStore(max_versions_per_url=10)


@pytest.fixture
def sqlite_store(db: Database) -> SqliteVersionStore:
    """Provide an empty SQLite-backed version store."""
    return SqliteVersionStore(db, max_versions_per_url=10)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock that advances one minute per call, starting at a fixed instant."""
    start = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
    ticks = iter(range(10_000))

    def clock() -> datetime:
        return start + timedelta(minutes=next(ticks))

    return clock


@pytest.fixture
def base_text() -> str:
    """Four-paragraph licensing page."""
    return BASE_TEXT


@pytest.fixture
def penalty_text() -> str:
    """Licensing page where one paragraph gains a penalty sentence."""
    return PENALTY_TEXT
