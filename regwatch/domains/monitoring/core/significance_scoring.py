"""Keyword-weighted significance scoring for classified content changes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from regwatch.domains.monitoring.core.diff_classification import (
    ChangeAnalysisResult,
    tokenize,
)
from regwatch.models.change_type import ChangeType

if TYPE_CHECKING:
    from regwatch.models.config import ChangeDetectionConfig

# --- Regulatory vocabulary by category ---

REGULATORY_CATEGORIES: dict[str, list[str]] = {
    "requirement": [
        "must",
        "shall",
        "required",
        "mandatory",
        "condition",
        "obligation",
        "prohibited",
        "license condition",
        "new requirement",
        "updated requirement",
    ],
    "date": [
        "effective",
        "deadline",
        "due date",
        "effective date",
        "compliance deadline",
    ],
    "fee": [
        "fee",
        "payment",
        "cost",
        "charge",
        "price",
        "amount",
        "rate",
        "percentage",
    ],
    "penalty": [
        "penalty",
        "fine",
        "sanction",
        "enforcement",
        "suspension",
        "revocation",
    ],
    "process": [
        "process",
        "procedure",
        "steps",
        "method",
        "application",
        "submission",
    ],
    "amendment": [
        "amendment",
        "revision",
        "update to",
        "revision of",
        "policy change",
        "regulation change",
        "code of practice",
    ],
}

NO_CHANGE_SUMMARY = "No change detected"
SUMMARY_KEYWORD_LIMIT = 3


@dataclass
class SignificantChangesResult:
    """Importance judgment for a change, handed to alerting and display layers."""

    has_significant_changes: bool = False
    change_type: ChangeType = ChangeType.NONE
    importance_level: int = 0
    summary: str = NO_CHANGE_SUMMARY
    detailed_description: str = ""
    added_terms: set[str] = field(default_factory=set)
    removed_terms: set[str] = field(default_factory=set)
    changed_categories: set[str] = field(default_factory=set)
    weighted_score: float = 0.0
    change_percentage: float = 0.0
    changed_sections: list[str] = field(default_factory=list)
    url: str | None = None
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    previous_captured_at: datetime | None = None
    current_captured_at: datetime | None = None
    hash_changed: bool = False

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable representation (sets become sorted lists)."""
        return {
            "url": self.url,
            "has_significant_changes": self.has_significant_changes,
            "change_type": self.change_type.value,
            "importance_level": self.importance_level,
            "weighted_score": self.weighted_score,
            "change_percentage": self.change_percentage,
            "summary": self.summary,
            "detailed_description": self.detailed_description,
            "added_terms": sorted(self.added_terms),
            "removed_terms": sorted(self.removed_terms),
            "changed_categories": sorted(self.changed_categories),
            "changed_sections": list(self.changed_sections),
            "hash_changed": self.hash_changed,
            "detected_at": self.detected_at.isoformat(),
            "previous_captured_at": (
                self.previous_captured_at.isoformat() if self.previous_captured_at else None
            ),
            "current_captured_at": (
                self.current_captured_at.isoformat() if self.current_captured_at else None
            ),
        }


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    words = phrase.split()
    return re.compile(r"\b" + r"\s+".join(re.escape(word) for word in words) + r"\b")


def vocabulary_delta(old_text: str, new_text: str) -> tuple[set[str], set[str]]:
    """Return (added, removed) word vocabularies between two texts."""
    old_vocabulary = set(tokenize(old_text))
    new_vocabulary = set(tokenize(new_text))
    return new_vocabulary - old_vocabulary, old_vocabulary - new_vocabulary


def match_keywords(
    old_text: str,
    new_text: str,
    keywords: list[str],
) -> tuple[set[str], set[str], int]:
    """Find configured keywords among the vocabulary deltas.

    Keywords that tokenize to a single word match the added/removed word
    sets. Anything else (several words, or hyphenated terms such as
    "non-compliance") matches as a phrase present in one text and absent
    from the other.
    Returns (added_terms, removed_terms, delta_term_count) where the count is
    the size of both vocabulary deltas plus any phrase matches.
    """
    added_vocabulary, removed_vocabulary = vocabulary_delta(old_text, new_text)
    old_lower = old_text.lower()
    new_lower = new_text.lower()

    added_terms: set[str] = set()
    removed_terms: set[str] = set()
    phrase_matches = 0

    for keyword in keywords:
        tokens = tokenize(keyword)
        if not tokens:
            continue
        if len(tokens) == 1:
            if tokens[0] in added_vocabulary:
                added_terms.add(keyword)
            if tokens[0] in removed_vocabulary:
                removed_terms.add(keyword)
            continue

        pattern = _phrase_pattern(keyword)
        in_old = pattern.search(old_lower) is not None
        in_new = pattern.search(new_lower) is not None
        if in_new and not in_old:
            added_terms.add(keyword)
            phrase_matches += 1
        elif in_old and not in_new:
            removed_terms.add(keyword)
            phrase_matches += 1

    delta_term_count = len(added_vocabulary) + len(removed_vocabulary) + phrase_matches
    return added_terms, removed_terms, delta_term_count


def compute_weighted_score(
    added_terms: set[str],
    removed_terms: set[str],
    delta_term_count: int,
    config: ChangeDetectionConfig,
) -> float:
    """Sum keyword weights over matched terms, normalized by the delta size.

    The result is clamped to [0.0, 1.0] so it is comparable across document
    lengths and against the significance threshold.
    """
    if delta_term_count <= 0:
        return 0.0
    total_weight = sum(config.weight_for(term) for term in added_terms) + sum(
        config.weight_for(term) for term in removed_terms
    )
    return max(0.0, min(1.0, total_weight / delta_term_count))


def categorize_terms(terms: set[str]) -> set[str]:
    """Regulatory categories whose vocabulary contains any of the terms."""
    return {
        category
        for category, vocabulary in REGULATORY_CATEGORIES.items()
        if any(term in vocabulary for term in terms)
    }


def rank_terms(terms: set[str], config: ChangeDetectionConfig) -> list[str]:
    """Terms ordered by descending weight, then alphabetically."""
    return sorted(terms, key=lambda term: (-config.weight_for(term), term))


def build_summary(analysis: ChangeAnalysisResult, ranked_added_terms: list[str]) -> str:
    """One-line summary of a classified change."""
    keywords = ", ".join(ranked_added_terms[:SUMMARY_KEYWORD_LIMIT]) or "none"
    percentage = analysis.change_percentage * 100
    return (
        f"{analysis.change_type.label} change detected: "
        f"{len(analysis.changed_sections)} sections changed ({percentage:.1f}%), "
        f"matched keywords: {keywords}"
    )


def build_detailed_description(analysis: ChangeAnalysisResult) -> str:
    """Multi-line description listing every changed section with its classification."""
    lines = [
        f"{analysis.change_type.label} change: "
        f"{analysis.added_count} added, {analysis.removed_count} removed, "
        f"{analysis.modified_count} modified, {analysis.format_only_count} formatting only "
        f"({analysis.change_percentage * 100:.1f}% of {analysis.total_segments_new} sections)"
    ]
    if not analysis.section_changes:
        lines.append("No section-level differences.")
    for change in analysis.section_changes:
        lines.append(f"- [{change.kind.value}] {change.title}")
    return "\n".join(lines)


def score_changes(
    old_text: str | None,
    new_text: str,
    analysis: ChangeAnalysisResult,
    config: ChangeDetectionConfig,
) -> SignificantChangesResult:
    """Turn a classified change into a significance judgment.

    A change is significant when its type is not NONE and the weighted
    keyword score reaches the configured threshold (inclusive). Importance
    depends only on the change type. NONE short-circuits without scoring.
    """
    if analysis.change_type is ChangeType.NONE:
        return SignificantChangesResult(
            change_percentage=analysis.change_percentage,
        )

    added_terms, removed_terms, delta_term_count = match_keywords(
        old_text or "", new_text, config.significant_keywords
    )
    weighted_score = compute_weighted_score(added_terms, removed_terms, delta_term_count, config)

    return SignificantChangesResult(
        has_significant_changes=weighted_score >= config.significance_threshold,
        change_type=analysis.change_type,
        importance_level=analysis.change_type.importance_level,
        summary=build_summary(analysis, rank_terms(added_terms, config)),
        detailed_description=build_detailed_description(analysis),
        added_terms=added_terms,
        removed_terms=removed_terms,
        changed_categories=categorize_terms(added_terms | removed_terms),
        weighted_score=round(weighted_score, 6),
        change_percentage=analysis.change_percentage,
        changed_sections=list(analysis.changed_sections),
    )
