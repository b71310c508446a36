"""In-process version store backed by per-url lists."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import structlog

from regwatch.exceptions import ConfigurationError, StorageError, VersionOrderError

if TYPE_CHECKING:
    from regwatch.models.page_version import PageVersion

logger = structlog.get_logger(__name__)


class InMemoryVersionStore:
    """Version store keeping history in memory; lost when the process exits."""

    def __init__(self, max_versions_per_url: int = 10) -> None:
        if max_versions_per_url <= 0:
            msg = "max_versions_per_url must be greater than 0"
            raise ConfigurationError(msg)
        self.max_versions_per_url = max_versions_per_url
        self._versions: dict[str, list[PageVersion]] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    def get_latest_version(self, url: str) -> PageVersion | None:
        """Most recent version for url, or None if the url was never captured."""
        with self._lock:
            history = self._versions.get(url)
            return history[-1] if history else None

    def save_version(self, version: PageVersion, timeout: float | None = None) -> None:
        """Append a version and evict the oldest beyond the retention cap."""
        if not self._lock.acquire(timeout=-1 if timeout is None else max(timeout, 0.0)):
            msg = f"timed out waiting to save version for {version.url}"
            raise StorageError(msg, url=version.url)
        try:
            history = self._versions.setdefault(version.url, [])
            if history and version.captured_at <= history[-1].captured_at:
                msg = (
                    f"captured_at {version.captured_at.isoformat()} is not after latest "
                    f"{history[-1].captured_at.isoformat()}"
                )
                raise VersionOrderError(msg, url=version.url)

            history.append(version.model_copy(update={"id": self._next_id}))
            self._next_id += 1

            overflow = len(history) - self.max_versions_per_url
            if overflow > 0:
                del history[:overflow]
                logger.debug("versions_evicted", url=version.url, evicted=overflow)
        finally:
            self._lock.release()

    def get_version_history(self, url: str, max_versions: int = 10) -> list[PageVersion]:
        """Versions for url, newest first, at most max_versions."""
        if max_versions <= 0:
            return []
        with self._lock:
            history = list(self._versions.get(url, []))
        return list(reversed(history))[:max_versions]

    def count_versions(self, url: str) -> int:
        """Number of stored versions for url."""
        with self._lock:
            return len(self._versions.get(url, []))

    def list_urls(self) -> list[str]:
        """All urls with at least one stored version, sorted."""
        with self._lock:
            return sorted(url for url, history in self._versions.items() if history)
