"""Alert trigger conditions evaluated against significance results."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from regwatch.domains.monitoring.core.significance_scoring import SignificantChangesResult
    from regwatch.models.alert_rule import AlertRule


def rule_matches_url(rule: AlertRule, url: str) -> bool:
    """True if the rule has no url patterns or any pattern matches the url."""
    if not rule.url_patterns:
        return True
    return any(re.search(pattern, url) for pattern in rule.url_patterns)


def rule_matches_terms(rule: AlertRule, result: SignificantChangesResult) -> bool:
    """True if the rule has no keywords or any keyword occurs in the change vocabulary."""
    if not rule.keywords:
        return True
    vocabulary = result.added_terms | result.removed_terms | result.changed_categories
    return any(keyword in vocabulary for keyword in rule.keywords)


def match_alert_rules(
    url: str,
    result: SignificantChangesResult,
    rules: list[AlertRule],
) -> list[AlertRule]:
    """Return the rules whose trigger conditions hold for this result.

    Only significant changes can trigger. Each rule additionally requires the
    minimum importance level, a matching url pattern, and a matching keyword.
    """
    if not result.has_significant_changes:
        return []
    return [
        rule
        for rule in rules
        if result.importance_level >= rule.min_importance
        and rule_matches_url(rule, url)
        and rule_matches_terms(rule, result)
    ]
