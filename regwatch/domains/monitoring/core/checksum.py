"""Content normalization, checksum, and summary computation."""

from __future__ import annotations

import hashlib
import re

_BLANK_LINE = re.compile(r"\n[ \t\r\f\v]*\n")
_WHITESPACE = re.compile(r"\s+")

SUMMARY_MAX_LENGTH = 200


def split_segments(text: str) -> list[str]:
    """Split text into paragraph segments on blank-line boundaries.

    Segments are stripped; empty segments are dropped. Internal line breaks
    are preserved so callers can still derive a title from the first line.
    """
    normalized_newlines = text.replace("\r\n", "\n").replace("\r", "\n")
    return [part.strip() for part in _BLANK_LINE.split(normalized_newlines) if part.strip()]


def normalize_segment(segment: str) -> str:
    """Collapse all whitespace runs to single spaces. Case is preserved."""
    return _WHITESPACE.sub(" ", segment).strip()


def normalize_content(text: str) -> str:
    """Canonical form of a text: normalized segments joined by blank lines."""
    return "\n\n".join(normalize_segment(segment) for segment in split_segments(text))


def compute_content_checksum(content: str) -> str:
    """Compute MD5 hex digest of the normalized form of content.

    Whitespace-only reflows hash identically. Returns a lowercase
    32-character hex string.
    """
    return hashlib.md5(normalize_content(content).encode("utf-8")).hexdigest()


def build_content_summary(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    """Short excerpt of the normalized text, cut on a word boundary."""
    flattened = _WHITESPACE.sub(" ", text).strip()
    if len(flattened) <= max_length:
        return flattened
    cut = flattened[:max_length]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:") + "..."
