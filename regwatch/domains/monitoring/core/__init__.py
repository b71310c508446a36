"""Monitoring domain core -- pure functions for page change detection and significance scoring."""

from __future__ import annotations

from regwatch.domains.monitoring.core.alert_rules import (
    match_alert_rules,
    rule_matches_terms,
    rule_matches_url,
)
from regwatch.domains.monitoring.core.checksum import (
    build_content_summary,
    compute_content_checksum,
    normalize_content,
    normalize_segment,
    split_segments,
)
from regwatch.domains.monitoring.core.diff_classification import (
    ChangeAnalysisResult,
    SectionChange,
    SectionChangeKind,
    classify_changes,
    determine_change_type,
    segment_title,
    token_similarity,
    tokenize,
)
from regwatch.domains.monitoring.core.significance_scoring import (
    REGULATORY_CATEGORIES,
    SignificantChangesResult,
    build_detailed_description,
    build_summary,
    categorize_terms,
    compute_weighted_score,
    match_keywords,
    rank_terms,
    score_changes,
    vocabulary_delta,
)

__all__ = [
    # alert_rules
    "match_alert_rules",
    "rule_matches_terms",
    "rule_matches_url",
    # checksum
    "build_content_summary",
    "compute_content_checksum",
    "normalize_content",
    "normalize_segment",
    "split_segments",
    # diff_classification
    "ChangeAnalysisResult",
    "SectionChange",
    "SectionChangeKind",
    "classify_changes",
    "determine_change_type",
    "segment_title",
    "token_similarity",
    "tokenize",
    # significance_scoring
    "REGULATORY_CATEGORIES",
    "SignificantChangesResult",
    "build_detailed_description",
    "build_summary",
    "categorize_terms",
    "compute_weighted_score",
    "match_keywords",
    "rank_terms",
    "score_changes",
    "vocabulary_delta",
]
