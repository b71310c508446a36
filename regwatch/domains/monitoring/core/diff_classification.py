"""Segment-level diff of two text snapshots and change-type classification."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import StrEnum

from regwatch.domains.monitoring.core.checksum import normalize_segment, split_segments
from regwatch.models.change_type import ChangeType
from regwatch.models.config import ChangeTypeThresholds

TITLE_MAX_LENGTH = 80
DEFAULT_SIMILARITY_FLOOR = 0.9

_TOKEN = re.compile(r"\w+")


class SectionChangeKind(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    FORMAT = "format"  # same position, token similarity >= floor


@dataclass
class SectionChange:
    """One segment that differs between the two snapshots."""

    title: str
    kind: SectionChangeKind
    similarity: float = 0.0


@dataclass
class ChangeAnalysisResult:
    """Result of comparing two snapshots segment by segment."""

    change_type: ChangeType = ChangeType.NONE
    added_count: int = 0
    removed_count: int = 0
    modified_count: int = 0
    change_percentage: float = 0.0
    changed_sections: list[str] = field(default_factory=list)
    section_changes: list[SectionChange] = field(default_factory=list)
    format_only_count: int = 0
    total_segments_old: int = 0
    total_segments_new: int = 0

    @property
    def total_changed(self) -> int:
        """Number of segments counted as added, removed, or modified."""
        return self.added_count + self.removed_count + self.modified_count


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens of a text."""
    return _TOKEN.findall(text.lower())


def segment_title(segment: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Identifier for a segment: its first line, whitespace-collapsed and truncated."""
    first_line = normalize_segment(segment.split("\n", 1)[0])
    if len(first_line) <= max_length:
        return first_line
    return first_line[: max_length - 3].rstrip() + "..."


def token_similarity(old_segment: str, new_segment: str) -> float:
    """Similarity ratio (0.0-1.0) of the word-token sequences of two segments."""
    old_tokens = tokenize(old_segment)
    new_tokens = tokenize(new_segment)
    if not old_tokens and not new_tokens:
        return 1.0
    return SequenceMatcher(None, old_tokens, new_tokens, autojunk=False).ratio()


def determine_change_type(
    change_percentage: float,
    thresholds: ChangeTypeThresholds | None = None,
) -> ChangeType:
    """Map a change percentage to a change type.

    0 -> NONE, (0, format] -> FORMAT, (format, minor] -> MINOR,
    (minor, major] -> MAJOR, above major -> COMPLETE.
    """
    bounds = thresholds or ChangeTypeThresholds()
    if change_percentage <= 0.0:
        return ChangeType.NONE
    if change_percentage <= bounds.format:
        return ChangeType.FORMAT
    if change_percentage <= bounds.minor:
        return ChangeType.MINOR
    if change_percentage <= bounds.major:
        return ChangeType.MAJOR
    return ChangeType.COMPLETE


def _unmatched_indices(segments: list[str], other: list[str]) -> set[int]:
    """Indices of segments with no exact counterpart in other (multiset semantics)."""
    pool = Counter(other)
    unmatched: set[int] = set()
    for index, segment in enumerate(segments):
        if pool[segment] > 0:
            pool[segment] -= 1
        else:
            unmatched.add(index)
    return unmatched


def classify_changes(
    old_text: str | None,
    new_text: str,
    min_content_length: int = 100,
    thresholds: ChangeTypeThresholds | None = None,
    similarity_floor: float = DEFAULT_SIMILARITY_FLOOR,
) -> ChangeAnalysisResult:
    """Classify the change between two snapshots.

    Returns a NONE result without diffing when there is no previous text or
    the new text is shorter than min_content_length. Otherwise segments are
    aligned with SequenceMatcher; segments present in both documents (even if
    moved) are unchanged, differing segments at aligned positions are paired
    and compared by token similarity, and the rest are added or removed.
    """
    if old_text is None:
        return ChangeAnalysisResult()
    if len(new_text.strip()) < min_content_length:
        return ChangeAnalysisResult()

    old_raw = split_segments(old_text)
    new_raw = split_segments(new_text)
    old_norm = [normalize_segment(segment) for segment in old_raw]
    new_norm = [normalize_segment(segment) for segment in new_raw]

    old_free = _unmatched_indices(old_norm, new_norm)
    new_free = _unmatched_indices(new_norm, old_norm)

    section_changes: list[SectionChange] = []
    added = removed = modified = format_only = 0
    drift = 0.0

    matcher = SequenceMatcher(None, old_norm, new_norm, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        olds = [i for i in range(i1, i2) if i in old_free]
        news = [j for j in range(j1, j2) if j in new_free]

        paired = min(len(olds), len(news)) if tag == "replace" else 0
        for i, j in zip(olds[:paired], news[:paired], strict=True):
            similarity = token_similarity(old_norm[i], new_norm[j])
            drift += 1.0 - similarity
            if similarity >= similarity_floor:
                format_only += 1
                kind = SectionChangeKind.FORMAT
            else:
                modified += 1
                kind = SectionChangeKind.MODIFIED
            section_changes.append(SectionChange(segment_title(new_raw[j]), kind, similarity))

        for i in olds[paired:]:
            removed += 1
            section_changes.append(
                SectionChange(segment_title(old_raw[i]), SectionChangeKind.REMOVED)
            )
        for j in news[paired:]:
            added += 1
            section_changes.append(
                SectionChange(segment_title(new_raw[j]), SectionChangeKind.ADDED)
            )

    change_percentage = min(1.0, (added + removed + drift) / max(len(new_norm), 1))
    change_type = determine_change_type(change_percentage, thresholds)
    if change_type is ChangeType.NONE and old_norm != new_norm:
        # Reordered paragraphs or punctuation/case-only edits
        change_type = ChangeType.FORMAT

    return ChangeAnalysisResult(
        change_type=change_type,
        added_count=added,
        removed_count=removed,
        modified_count=modified,
        change_percentage=round(change_percentage, 6),
        changed_sections=[
            change.title
            for change in section_changes
            if change.kind is not SectionChangeKind.FORMAT
        ],
        section_changes=section_changes,
        format_only_count=format_only,
        total_segments_old=len(old_norm),
        total_segments_new=len(new_norm),
    )
