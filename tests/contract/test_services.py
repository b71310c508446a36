"""Contract tests for the change detection services.

Collaborators (version store, alert dispatcher) are mocked where the test is
about orchestration; the in-memory store is used where persisted state is
what matters.
"""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock, patch

import pytest

from regwatch.domains.monitoring.core.checksum import compute_content_checksum
from regwatch.domains.monitoring.core.significance_scoring import (
    SignificantChangesResult,
    score_changes,
)
from regwatch.domains.monitoring.repositories.in_memory_version_store import (
    InMemoryVersionStore,
)
from regwatch.domains.monitoring.services.alert_gate import DEFAULT_RULE, AlertGate
from regwatch.domains.monitoring.services.batch_detector import BatchChangeDetector
from regwatch.domains.monitoring.services.change_detection_service import (
    ChangeDetectionService,
    UrlLockRegistry,
)
from regwatch.exceptions import (
    DetectionCancelledError,
    DetectionError,
    DetectionTimeoutError,
    StorageError,
    VersionNotFoundError,
)
from regwatch.models.alert_rule import AlertRule
from regwatch.models.change_type import ChangeType
from regwatch.models.page_version import PageCapture, PageVersion

if TYPE_CHECKING:
    from collections.abc import Callable

    from regwatch.models.config import ChangeDetectionConfig

URL = "https://regulator.example.gov/licensing/conditions"
SERVICE_MODULE = "regwatch.domains.monitoring.services.change_detection_service"


def _stored_version(text: str, captured_at: datetime) -> PageVersion:
    return PageVersion(
        url=URL,
        content_hash=compute_content_checksum(text),
        captured_at=captured_at,
        text_content=text,
    )


def _significant(change_type: ChangeType = ChangeType.MAJOR) -> SignificantChangesResult:
    return SignificantChangesResult(
        has_significant_changes=True,
        change_type=change_type,
        importance_level=change_type.importance_level,
        added_terms={"penalty"},
        changed_categories={"penalty"},
    )


# ---------------------------------------------------------------------------
# ChangeDetectionService: state machine
# ---------------------------------------------------------------------------


class TestDetectAndRecord:
    """Per-url detection, persistence decision, and result shape."""

    def test_first_capture_persists_one_version(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        fixed_clock: Callable[[], datetime],
        base_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config, clock=fixed_clock)
        result = service.detect_and_record(URL, "<p>page</p>", base_text)

        assert result.has_significant_changes is False
        assert result.change_type is ChangeType.NONE
        assert result.hash_changed is False
        assert result.previous_captured_at is None
        assert result.url == URL
        assert memory_store.count_versions(URL) == 1

        stored = memory_store.get_latest_version(URL)
        assert stored is not None
        assert stored.content_hash == compute_content_checksum(base_text)
        assert stored.html_content == "<p>page</p>"
        assert stored.content_length == len(base_text)
        assert stored.change_from_previous is ChangeType.NONE
        assert result.current_captured_at == stored.captured_at

    def test_identical_text_writes_nothing(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        fixed_clock: Callable[[], datetime],
        base_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config, clock=fixed_clock)
        service.detect_and_record(URL, "", base_text)

        for _ in range(3):
            result = service.detect_and_record(URL, "<p>new markup</p>", base_text)
            assert result.has_significant_changes is False
            assert result.change_type is ChangeType.NONE
            assert result.hash_changed is False

        assert memory_store.count_versions(URL) == 1

    def test_whitespace_reflow_is_hash_equal(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        service.detect_and_record(URL, "", base_text)
        service.detect_and_record(URL, "", base_text.replace(" ", "  "))
        assert memory_store.count_versions(URL) == 1

    def test_changed_text_is_classified_scored_and_stored(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        fixed_clock: Callable[[], datetime],
        base_text: str,
        penalty_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config, clock=fixed_clock)
        first = service.detect_and_record(URL, "", base_text)
        result = service.detect_and_record(URL, "", penalty_text)

        assert result.change_type is ChangeType.MINOR
        assert result.importance_level == 2
        assert result.has_significant_changes is True
        assert result.added_terms == {"penalty", "payment"}
        assert result.hash_changed is True
        assert result.previous_captured_at == first.current_captured_at
        assert memory_store.count_versions(URL) == 2

        latest = memory_store.get_latest_version(URL)
        assert latest is not None
        assert latest.change_from_previous is ChangeType.MINOR
        assert latest.text_content == penalty_text

    def test_format_only_change_is_stored(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        service.detect_and_record(URL, "", base_text)
        result = service.detect_and_record(URL, "", base_text.replace("authority.", "authority!"))

        assert result.change_type is ChangeType.FORMAT
        assert result.has_significant_changes is False
        assert memory_store.count_versions(URL) == 2

    def test_short_text_is_none_but_stored(
        self,
        memory_store: InMemoryVersionStore,
        base_text: str,
    ) -> None:
        from regwatch.models.config import ChangeDetectionConfig

        service = ChangeDetectionService(memory_store, ChangeDetectionConfig.load())
        service.detect_and_record(URL, "", base_text)
        result = service.detect_and_record(URL, "", "Penalty fee.")

        assert result.change_type is ChangeType.NONE
        assert result.has_significant_changes is False
        assert memory_store.count_versions(URL) == 2

    def test_invalid_url(self, memory_store: InMemoryVersionStore, config: Any) -> None:
        service = ChangeDetectionService(memory_store, config)
        with pytest.raises(DetectionError, match="http"):
            service.detect_and_record("regulator.example.gov/page", "", "text")
        assert memory_store.list_urls() == []

    def test_stalled_clock_bumps_timestamp(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
        penalty_text: str,
    ) -> None:
        frozen = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
        service = ChangeDetectionService(memory_store, config, clock=lambda: frozen)
        service.detect_and_record(URL, "", base_text)
        service.detect_and_record(URL, "", penalty_text)

        history = memory_store.get_version_history(URL)
        assert history[0].captured_at == frozen + timedelta(microseconds=1)
        assert history[1].captured_at == frozen

    def test_extra_metadata_is_stored(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        service.detect_and_record(URL, "", base_text, extra={"jurisdiction": "uk"})
        latest = memory_store.get_latest_version(URL)
        assert latest is not None
        assert latest.extra == {"jurisdiction": "uk"}

    def test_get_version_history_passthrough(self, config: ChangeDetectionConfig) -> None:
        store = MagicMock()
        store.get_version_history.return_value = []
        service = ChangeDetectionService(store, config)

        service.get_version_history(URL)
        service.get_version_history(URL, max_versions=3)

        store.get_version_history.assert_any_call(URL, config.max_versions_per_url)
        store.get_version_history.assert_any_call(URL, 3)


# ---------------------------------------------------------------------------
# ChangeDetectionService: error mapping
# ---------------------------------------------------------------------------


class TestDetectionErrors:
    """Storage and classification failures surface as typed errors."""

    def test_not_found_means_first_capture(
        self, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        store = MagicMock()
        store.get_latest_version.side_effect = VersionNotFoundError("missing", url=URL)
        service = ChangeDetectionService(store, config)

        result = service.detect_and_record(URL, "", base_text)

        assert result.change_type is ChangeType.NONE
        store.save_version.assert_called_once()

    def test_read_failure_raises_detection_error(
        self, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        store = MagicMock()
        store.get_latest_version.side_effect = StorageError("disk I/O error", url=URL)
        service = ChangeDetectionService(store, config)

        with pytest.raises(DetectionError, match="could not read") as exc_info:
            service.detect_and_record(URL, "", base_text)

        assert exc_info.value.url == URL
        assert isinstance(exc_info.value.__cause__, StorageError)
        store.save_version.assert_not_called()

    def test_save_failure_propagates_storage_error(
        self, config: ChangeDetectionConfig, base_text: str, penalty_text: str
    ) -> None:
        store = MagicMock()
        store.get_latest_version.return_value = _stored_version(
            base_text, datetime(2024, 3, 1, tzinfo=UTC)
        )
        store.save_version.side_effect = StorageError("disk full", url=URL)
        service = ChangeDetectionService(store, config)

        with pytest.raises(StorageError, match="disk full"):
            service.detect_and_record(URL, "", penalty_text)

    def test_hash_equal_path_does_not_save(
        self, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        store = MagicMock()
        store.get_latest_version.return_value = _stored_version(
            base_text, datetime(2024, 3, 1, tzinfo=UTC)
        )
        service = ChangeDetectionService(store, config)

        service.detect_and_record(URL, "", base_text)

        store.save_version.assert_not_called()

    def test_unexpected_classification_failure(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
        penalty_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        service.detect_and_record(URL, "", base_text)

        with (
            patch(f"{SERVICE_MODULE}.classify_changes", side_effect=RuntimeError("boom")),
            pytest.raises(DetectionError, match="boom") as exc_info,
        ):
            service.detect_and_record(URL, "", penalty_text)

        assert exc_info.value.url == URL
        assert memory_store.count_versions(URL) == 1

    def test_malformed_text_raises_detection_error(
        self, memory_store: InMemoryVersionStore, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        service.detect_and_record(URL, "", base_text)

        with pytest.raises(DetectionError, match="could not process") as exc_info:
            service.detect_and_record(URL, "", "Operators must pay the fee \udcff now.")

        assert exc_info.value.url == URL
        assert isinstance(exc_info.value.__cause__, UnicodeEncodeError)
        assert memory_store.count_versions(URL) == 1

    def test_invalid_extra_raises_detection_error(
        self, memory_store: InMemoryVersionStore, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        bad_extra: Any = {"pages": 3}

        with pytest.raises(DetectionError) as exc_info:
            service.detect_and_record(URL, "", base_text, extra=bad_extra)

        assert exc_info.value.url == URL
        assert memory_store.count_versions(URL) == 0


# ---------------------------------------------------------------------------
# ChangeDetectionService: locking, timeout, cancellation
# ---------------------------------------------------------------------------


class TestConcurrencyControls:
    """Per-url locking, lock timeouts, and cancellation before write."""

    def test_lock_timeout(
        self, memory_store: InMemoryVersionStore, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        service = ChangeDetectionService(memory_store, config)

        with service._locks.hold(URL), pytest.raises(DetectionTimeoutError):
            service.detect_and_record(URL, "", base_text, timeout=0.05)

        assert memory_store.count_versions(URL) == 0

    def test_other_urls_not_blocked(
        self, memory_store: InMemoryVersionStore, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        other = "https://regulator.example.gov/fees"

        with service._locks.hold(URL):
            service.detect_and_record(other, "", base_text, timeout=0.05)

        assert memory_store.count_versions(other) == 1

    def test_cancelled_before_start(
        self, memory_store: InMemoryVersionStore, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(DetectionCancelledError):
            service.detect_and_record(URL, "", base_text, cancel_event=cancel)

        assert memory_store.count_versions(URL) == 0

    def test_cancelled_during_scoring_leaves_history_unchanged(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
        penalty_text: str,
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        service.detect_and_record(URL, "", base_text)
        before = memory_store.get_version_history(URL)
        cancel = threading.Event()

        def cancel_while_scoring(*args: Any, **kwargs: Any) -> SignificantChangesResult:
            cancel.set()
            return score_changes(*args, **kwargs)

        with (
            patch(f"{SERVICE_MODULE}.score_changes", side_effect=cancel_while_scoring),
            pytest.raises(DetectionCancelledError),
        ):
            service.detect_and_record(URL, "", penalty_text, cancel_event=cancel)

        assert memory_store.get_version_history(URL) == before

    def test_deadline_spent_on_slow_read_prevents_write(
        self, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        store = MagicMock()

        def slow_read(url: str) -> None:
            time.sleep(0.2)

        store.get_latest_version.side_effect = slow_read
        service = ChangeDetectionService(store, config)

        with pytest.raises(DetectionTimeoutError, match="deadline exceeded") as exc_info:
            service.detect_and_record(URL, "", base_text, timeout=0.1)

        assert exc_info.value.url == URL
        store.save_version.assert_not_called()

    def test_remaining_time_passed_to_store(
        self, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        store = MagicMock()
        store.get_latest_version.return_value = None
        service = ChangeDetectionService(store, config)

        service.detect_and_record(URL, "", base_text, timeout=5.0)

        timeout = store.save_version.call_args.kwargs["timeout"]
        assert 0 < timeout <= 5.0

    def test_no_timeout_means_unbounded_store_call(
        self, config: ChangeDetectionConfig, base_text: str
    ) -> None:
        store = MagicMock()
        store.get_latest_version.return_value = None
        service = ChangeDetectionService(store, config)

        service.detect_and_record(URL, "", base_text)

        assert store.save_version.call_args.kwargs["timeout"] is None

    def test_lock_registry_drops_released_entries(self) -> None:
        registry = UrlLockRegistry()
        with registry.hold(URL):
            assert registry.active_urls() == 1
        assert registry.active_urls() == 0

    def test_lock_registry_drops_entry_after_timeout(self) -> None:
        registry = UrlLockRegistry()
        with registry.hold(URL):
            with pytest.raises(DetectionTimeoutError), registry.hold(URL, timeout=0.01):
                pass
            assert registry.active_urls() == 1
        assert registry.active_urls() == 0


# ---------------------------------------------------------------------------
# Alerting
# ---------------------------------------------------------------------------


class TestAlertGate:
    """Rule selection and cooldown."""

    def test_default_rule_when_none_configured(self) -> None:
        gate = AlertGate()
        assert gate.select(URL, _significant()) == [DEFAULT_RULE]

    def test_not_significant_selects_nothing(self) -> None:
        gate = AlertGate()
        assert gate.select(URL, SignificantChangesResult()) == []

    def test_configured_rules_filter(self) -> None:
        penalties = AlertRule(name="penalties", keywords=["penalty"])
        fees = AlertRule(name="fees", keywords=["fee"])
        gate = AlertGate([penalties, fees])
        assert gate.select(URL, _significant()) == [penalties]

    def test_cooldown_suppresses_repeat(self) -> None:
        start = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
        gate = AlertGate(cooldown_minutes=60)

        assert gate.select(URL, _significant(), now=start) == [DEFAULT_RULE]
        assert gate.select(URL, _significant(), now=start + timedelta(minutes=30)) == []
        assert gate.select(
            "https://regulator.example.gov/fees",
            _significant(),
            now=start + timedelta(minutes=30),
        ) == [DEFAULT_RULE]
        assert gate.select(URL, _significant(), now=start + timedelta(minutes=61)) == [
            DEFAULT_RULE
        ]

    def test_zero_cooldown(self) -> None:
        start = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
        gate = AlertGate(cooldown_minutes=0)
        gate.select(URL, _significant(), now=start)
        assert gate.select(URL, _significant(), now=start) == [DEFAULT_RULE]

    def test_from_config(self) -> None:
        from regwatch.models.config import ChangeDetectionConfig

        rule = AlertRule(name="major", min_importance=3)
        gate = AlertGate.from_config(
            ChangeDetectionConfig.load(alert_rules=[rule], alert_cooldown_minutes=5)
        )
        assert gate.rules == [rule]
        assert gate.cooldown == timedelta(minutes=5)


class TestAlertDispatch:
    """The service dispatches alerts after persisting a significant change."""

    def test_significant_change_dispatched(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
        penalty_text: str,
    ) -> None:
        dispatcher = MagicMock()
        service = ChangeDetectionService(memory_store, config, alert_dispatcher=dispatcher)

        service.detect_and_record(URL, "", base_text)
        dispatcher.process_alert.assert_not_called()

        result = service.detect_and_record(URL, "", penalty_text)
        dispatcher.process_alert.assert_called_once_with(URL, result, [DEFAULT_RULE])

    def test_insignificant_change_not_dispatched(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
    ) -> None:
        dispatcher = MagicMock()
        service = ChangeDetectionService(memory_store, config, alert_dispatcher=dispatcher)
        service.detect_and_record(URL, "", base_text)
        service.detect_and_record(URL, "", base_text.replace("authority.", "authority!"))
        dispatcher.process_alert.assert_not_called()

    def test_dispatcher_failure_does_not_fail_detection(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
        penalty_text: str,
    ) -> None:
        dispatcher = MagicMock()
        dispatcher.process_alert.side_effect = ConnectionError("smtp down")
        service = ChangeDetectionService(memory_store, config, alert_dispatcher=dispatcher)

        service.detect_and_record(URL, "", base_text)
        result = service.detect_and_record(URL, "", penalty_text)

        assert result.has_significant_changes is True
        assert memory_store.count_versions(URL) == 2

    def test_custom_gate_used(
        self,
        memory_store: InMemoryVersionStore,
        config: ChangeDetectionConfig,
        base_text: str,
        penalty_text: str,
    ) -> None:
        dispatcher = MagicMock()
        gate = MagicMock()
        gate.select.return_value = []
        service = ChangeDetectionService(
            memory_store, config, alert_dispatcher=dispatcher, alert_gate=gate
        )

        service.detect_and_record(URL, "", base_text)
        service.detect_and_record(URL, "", penalty_text)

        assert gate.select.call_count == 2
        dispatcher.process_alert.assert_not_called()

    def test_no_dispatcher_no_gate(
        self, memory_store: InMemoryVersionStore, config: ChangeDetectionConfig
    ) -> None:
        service = ChangeDetectionService(memory_store, config)
        assert service.alert_gate is None


# ---------------------------------------------------------------------------
# BatchChangeDetector
# ---------------------------------------------------------------------------


class TestBatchChangeDetector:
    """Parallel detection over page captures."""

    def test_processes_all_captures(self, base_text: str) -> None:
        service = MagicMock()
        service.detect_and_record.return_value = SignificantChangesResult()
        captures = [
            PageCapture(url=f"https://regulator.example.gov/page/{i}", extracted_text=base_text)
            for i in range(6)
        ]

        summary = BatchChangeDetector(service, max_workers=3).detect_all(captures)

        assert summary["processed"] == 6
        assert summary["successful"] == 6
        assert summary["failed"] == 0
        assert summary["changes_found"] == 0
        assert len(summary["results"]) == 6
        assert service.detect_and_record.call_count == 6

    def test_failures_recorded_per_url(self, base_text: str) -> None:
        bad_url = "https://regulator.example.gov/broken"

        def detect(url: str, html: str, text: str, **kwargs: Any) -> SignificantChangesResult:
            if url == bad_url:
                raise StorageError("disk full", url=url)
            return _significant()

        service = MagicMock()
        service.detect_and_record.side_effect = detect
        captures = [
            PageCapture(url=URL, extracted_text=base_text),
            PageCapture(url=bad_url, extracted_text=base_text),
        ]

        summary = BatchChangeDetector(service).detect_all(captures)

        assert summary["successful"] == 1
        assert summary["failed"] == 1
        assert summary["significant_changes"] == 1
        assert summary["changes_found"] == 1
        assert summary["errors"] == [f"{bad_url}: StorageError: disk full"]

    def test_empty_text_skipped(self, base_text: str) -> None:
        service = MagicMock()
        service.detect_and_record.return_value = SignificantChangesResult()
        captures = [
            PageCapture(url=URL, extracted_text=base_text),
            PageCapture(url="https://regulator.example.gov/empty", extracted_text="   "),
        ]

        summary = BatchChangeDetector(service).detect_all(captures)

        assert summary["skipped"] == 1
        assert summary["processed"] == 2
        service.detect_and_record.assert_called_once_with(URL, "", base_text, extra={})

    def test_empty_batch(self) -> None:
        summary = BatchChangeDetector(MagicMock()).detect_all([])
        assert summary["processed"] == 0
        assert summary["results"] == []
