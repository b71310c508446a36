"""Service protocols defining interfaces for dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from regwatch.domains.monitoring.core.significance_scoring import SignificantChangesResult
    from regwatch.models.alert_rule import AlertRule
    from regwatch.models.page_version import PageVersion


class VersionStoreProtocol(Protocol):
    """Ordered, bounded per-url history of page versions."""

    def get_latest_version(self, url: str) -> PageVersion | None: ...

    def save_version(self, version: PageVersion, timeout: float | None = None) -> None: ...

    def get_version_history(self, url: str, max_versions: int = 10) -> list[PageVersion]: ...

    def count_versions(self, url: str) -> int: ...

    def list_urls(self) -> list[str]: ...


class AlertDispatcherProtocol(Protocol):
    """Delivers notifications (email, webhook, ...) for triggered alert rules."""

    def process_alert(
        self,
        url: str,
        result: SignificantChangesResult,
        rules: list[AlertRule],
    ) -> None: ...
