"""Change detection service: per-url orchestration of classify, score, and persist."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from regwatch.domains.monitoring.core.checksum import (
    build_content_summary,
    compute_content_checksum,
)
from regwatch.domains.monitoring.core.diff_classification import classify_changes
from regwatch.domains.monitoring.core.significance_scoring import (
    SignificantChangesResult,
    score_changes,
)
from regwatch.domains.monitoring.services.alert_gate import AlertGate
from regwatch.exceptions import (
    DetectionCancelledError,
    DetectionError,
    DetectionTimeoutError,
    RegwatchError,
    StorageError,
    VersionNotFoundError,
)
from regwatch.models.page_version import PageVersion
from regwatch.utils.validators import is_valid_url

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

    from regwatch.models.config import ChangeDetectionConfig
    from regwatch.services.protocols import AlertDispatcherProtocol, VersionStoreProtocol

logger = structlog.get_logger(__name__)


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class UrlLockRegistry:
    """Per-url mutual exclusion; entries are dropped once no caller holds or waits."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, url: str, timeout: float | None = None) -> Generator[None, None, None]:
        """Hold the lock for url, raising DetectionTimeoutError after timeout seconds."""
        with self._guard:
            entry = self._entries.setdefault(url, _LockEntry())
            entry.holders += 1

        acquired = entry.lock.acquire(timeout=-1 if timeout is None else max(timeout, 0.0))
        try:
            if not acquired:
                msg = f"timed out after {timeout}s waiting for detection lock on {url}"
                raise DetectionTimeoutError(msg, url=url)
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[url]

    def active_urls(self) -> int:
        """Number of urls currently locked or awaited."""
        with self._guard:
            return len(self._entries)


class ChangeDetectionService:
    """Public entry point: compare a new capture with the stored history and record it.

    Alerting collaborators are optional; detection and persistence behave the
    same whether or not they are wired.
    """

    def __init__(
        self,
        version_store: VersionStoreProtocol,
        config: ChangeDetectionConfig,
        alert_dispatcher: AlertDispatcherProtocol | None = None,
        alert_gate: AlertGate | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.version_store = version_store
        self.config = config
        self.alert_dispatcher = alert_dispatcher
        self.alert_gate = alert_gate
        if self.alert_gate is None and alert_dispatcher is not None:
            self.alert_gate = AlertGate.from_config(config)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._locks = UrlLockRegistry()

    def detect_and_record(
        self,
        url: str,
        new_html: str,
        new_text: str,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        extra: dict[str, str] | None = None,
    ) -> SignificantChangesResult:
        """Detect changes for url and persist the new version when the content changed.

        - No prior version: store the first version; never significant.
        - Same content hash as the latest version: nothing is written.
        - Different hash: classify, score, and always store the new version.

        timeout is a deadline for the whole call: it bounds the lock wait,
        is checked again before the write, and the remainder is handed to the
        store. A store call already in flight is not interrupted.

        Raises DetectionError (including timeout/cancellation) or StorageError.
        """
        if not is_valid_url(url):
            msg = f"url must be an absolute http or https URL: {url!r}"
            raise DetectionError(msg, url=url)

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._locks.hold(url, timeout):
            result = self._detect_locked(
                url, new_html, new_text, cancel_event, extra or {}, deadline
            )

        self._dispatch_alerts(url, result)
        return result

    def get_version_history(self, url: str, max_versions: int | None = None) -> list[PageVersion]:
        """Stored versions for url, newest first."""
        limit = self.config.max_versions_per_url if max_versions is None else max_versions
        return self.version_store.get_version_history(url, limit)

    def _detect_locked(
        self,
        url: str,
        new_html: str,
        new_text: str,
        cancel_event: threading.Event | None,
        extra: dict[str, str],
        deadline: float | None,
    ) -> SignificantChangesResult:
        self._check_cancelled(url, cancel_event)
        previous = self._load_latest(url)
        self._remaining(url, deadline)

        try:
            new_hash = compute_content_checksum(new_text)
            if previous is not None and previous.content_hash == new_hash:
                logger.debug("content_unchanged", url=url, content_hash=new_hash)
                return SignificantChangesResult(
                    url=url,
                    previous_captured_at=previous.captured_at,
                    current_captured_at=previous.captured_at,
                )

            old_text = previous.text_content if previous is not None else None
            analysis = classify_changes(
                old_text,
                new_text,
                min_content_length=self.config.min_content_length,
                thresholds=self.config.thresholds,
                similarity_floor=self.config.similarity_floor,
            )
            result = score_changes(old_text, new_text, analysis, self.config)

            captured_at = self._next_timestamp(previous)
            version = PageVersion(
                url=url,
                content_hash=new_hash,
                captured_at=captured_at,
                text_content=new_text,
                content_summary=build_content_summary(new_text),
                change_from_previous=analysis.change_type,
                html_content=new_html or None,
                content_length=len(new_text),
                extra=dict(extra),
            )
        except RegwatchError:
            raise
        except Exception as exc:
            logger.error("detection_failed", url=url, error=str(exc))
            msg = f"could not process capture for {url}: {exc}"
            raise DetectionError(msg, url=url) from exc

        self._check_cancelled(url, cancel_event)
        self.version_store.save_version(version, timeout=self._remaining(url, deadline))

        result.url = url
        result.hash_changed = previous is not None
        result.previous_captured_at = previous.captured_at if previous is not None else None
        result.current_captured_at = captured_at

        if previous is None:
            logger.info("first_version_recorded", url=url, content_hash=new_hash)
        else:
            logger.info(
                "change_detected",
                url=url,
                change_type=result.change_type.value,
                change_percentage=result.change_percentage,
                weighted_score=result.weighted_score,
                significant=result.has_significant_changes,
            )
        return result

    @staticmethod
    def _remaining(url: str, deadline: float | None) -> float | None:
        """Seconds left before deadline; DetectionTimeoutError once it has passed."""
        if deadline is None:
            return None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("detection_deadline_exceeded", url=url)
            msg = f"deadline exceeded while detecting changes for {url}"
            raise DetectionTimeoutError(msg, url=url)
        return remaining

    def _load_latest(self, url: str) -> PageVersion | None:
        try:
            return self.version_store.get_latest_version(url)
        except VersionNotFoundError:
            return None
        except StorageError as exc:
            logger.error("version_lookup_failed", url=url, error=str(exc))
            msg = f"could not read latest version for {url}: {exc}"
            raise DetectionError(msg, url=url) from exc

    def _next_timestamp(self, previous: PageVersion | None) -> datetime:
        """Capture time strictly after the previous version's."""
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        if previous is not None and now <= previous.captured_at:
            now = previous.captured_at + timedelta(microseconds=1)
        return now

    @staticmethod
    def _check_cancelled(url: str, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("detection_cancelled", url=url)
            msg = f"detection cancelled for {url}"
            raise DetectionCancelledError(msg, url=url)

    def _dispatch_alerts(self, url: str, result: SignificantChangesResult) -> None:
        if self.alert_dispatcher is None or self.alert_gate is None:
            return
        rules = self.alert_gate.select(url, result)
        if not rules:
            return
        try:
            self.alert_dispatcher.process_alert(url, result, rules)
        except Exception as exc:
            logger.warning(
                "alert_dispatch_failed",
                url=url,
                rules=[rule.name for rule in rules],
                error=str(exc),
            )
