"""Alert rule selection with per-url cooldown."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from regwatch.domains.monitoring.core.alert_rules import match_alert_rules
from regwatch.models.alert_rule import AlertRule

if TYPE_CHECKING:
    from collections.abc import Callable

    from regwatch.domains.monitoring.core.significance_scoring import SignificantChangesResult
    from regwatch.models.config import ChangeDetectionConfig

logger = structlog.get_logger(__name__)

DEFAULT_RULE = AlertRule(name="default")


class AlertGate:
    """Decides which alert rules fire for a result, suppressing repeats within a cooldown."""

    def __init__(
        self,
        rules: list[AlertRule] | None = None,
        cooldown_minutes: int = 60,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.rules = list(rules or [])
        self.cooldown = timedelta(minutes=cooldown_minutes)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._last_fired: dict[tuple[str, str], datetime] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: ChangeDetectionConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> AlertGate:
        """Gate using the rules and cooldown of a change detection config."""
        return cls(config.alert_rules, config.alert_cooldown_minutes, clock)

    def select(
        self,
        url: str,
        result: SignificantChangesResult,
        now: datetime | None = None,
    ) -> list[AlertRule]:
        """Rules that should fire now for this url and result.

        Without configured rules every significant result triggers the
        implicit default rule. Selected rules start their cooldown.
        """
        if not result.has_significant_changes:
            return []
        candidates = match_alert_rules(url, result, self.rules) if self.rules else [DEFAULT_RULE]

        now = now or self._clock()
        selected: list[AlertRule] = []
        with self._lock:
            for rule in candidates:
                key = (url, rule.name)
                last = self._last_fired.get(key)
                if last is not None and now - last < self.cooldown:
                    logger.debug("alert_suppressed_by_cooldown", url=url, rule=rule.name)
                    continue
                self._last_fired[key] = now
                selected.append(rule)
        return selected
