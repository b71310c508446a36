"""Parallel change detection over many page captures."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Any

import structlog

from regwatch.models.change_type import ChangeType
from regwatch.utils.progress import ProgressTracker

if TYPE_CHECKING:
    from regwatch.domains.monitoring.core.significance_scoring import SignificantChangesResult
    from regwatch.domains.monitoring.services.change_detection_service import (
        ChangeDetectionService,
    )
    from regwatch.models.page_version import PageCapture

logger = structlog.get_logger(__name__)


class BatchChangeDetector:
    """Run detect_and_record for each capture using a thread pool.

    Captures without extracted text are skipped. A failure for one url is
    recorded and does not stop the others.
    """

    def __init__(self, service: ChangeDetectionService, max_workers: int = 5) -> None:
        self.service = service
        self.max_workers = max_workers

    def detect_all(
        self,
        captures: list[PageCapture],
        max_workers: int | None = None,
    ) -> dict[str, Any]:
        """Process captures in parallel.

        Returns summary stats with an additional 'results' key holding the
        SignificantChangesResult of every successful detection.
        """
        workers = max_workers or self.max_workers
        tracker = ProgressTracker(total=len(captures))
        results: list[SignificantChangesResult] = []

        pending = []
        for capture in captures:
            if not capture.extracted_text.strip():
                logger.debug("capture_skipped_empty_text", url=capture.url)
                tracker.record_skip()
                continue
            pending.append(capture)

        logger.info("batch_detection_started", total=len(captures), workers=workers)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(
                    self.service.detect_and_record,
                    capture.url,
                    capture.rendered_html,
                    capture.extracted_text,
                    extra=dict(capture.extra),
                ): capture
                for capture in pending
            }

            for future in as_completed(futures):
                capture = futures[future]
                try:
                    result = future.result()
                except Exception as exc:
                    logger.error(
                        "batch_item_failed",
                        url=capture.url,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    tracker.record_failure(f"{capture.url}: {type(exc).__name__}: {exc}")
                else:
                    results.append(result)
                    tracker.record_success(
                        changed=result.change_type is not ChangeType.NONE,
                        significant=result.has_significant_changes,
                    )

                tracker.log_progress(every_n=10)

        summary: dict[str, Any] = tracker.summary()
        summary["results"] = results
        logger.info(
            "batch_detection_complete",
            successful=summary["successful"],
            failed=summary["failed"],
            significant_changes=summary["significant_changes"],
        )
        return summary
