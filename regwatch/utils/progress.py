"""Progress tracking for batch change detection runs."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from regwatch.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProgressTracker:
    """Track outcomes of a batch of per-url detections.

    Safe to update from worker threads.
    """

    total: int
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    changes_found: int = 0
    significant_changes: int = 0
    errors: list[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.monotonic)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_success(self, changed: bool = False, significant: bool = False) -> None:
        """Record a completed detection and whether it found a (significant) change."""
        with self._lock:
            self.processed += 1
            self.successful += 1
            if changed:
                self.changes_found += 1
            if significant:
                self.significant_changes += 1

    def record_failure(self, error: str) -> None:
        """Record a failed detection."""
        with self._lock:
            self.processed += 1
            self.failed += 1
            self.errors.append(error)

    def record_skip(self) -> None:
        """Record a capture that was not processed."""
        with self._lock:
            self.processed += 1
            self.skipped += 1

    @property
    def elapsed_seconds(self) -> float:
        """Time elapsed since start."""
        return time.monotonic() - self.start_time

    @property
    def progress_percentage(self) -> float:
        """Percentage of total items processed."""
        if self.total == 0:
            return 100.0
        return (self.processed / self.total) * 100.0

    def log_progress(self, every_n: int = 10) -> None:
        """Log progress every N items."""
        if self.processed % every_n == 0 or self.processed == self.total:
            logger.info(
                "batch_progress",
                processed=self.processed,
                total=self.total,
                successful=self.successful,
                failed=self.failed,
                skipped=self.skipped,
                changes_found=self.changes_found,
                percentage=f"{self.progress_percentage:.1f}%",
                elapsed=f"{self.elapsed_seconds:.1f}s",
            )

    def summary(self) -> dict[str, int | float | list[str]]:
        """Return summary statistics."""
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "changes_found": self.changes_found,
            "significant_changes": self.significant_changes,
            "duration_seconds": round(self.elapsed_seconds, 2),
            "errors": list(self.errors),
        }
