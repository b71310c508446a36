"""Ordinal change-type taxonomy shared by classification, scoring, and storage."""

from __future__ import annotations

from enum import StrEnum


class ChangeType(StrEnum):
    """Magnitude of a content change, ordered from no change to a full rewrite."""

    NONE = "none"
    FORMAT = "format"
    MINOR = "minor"
    MAJOR = "major"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        """Position in the ordering none < format < minor < major < complete."""
        return list(ChangeType).index(self)

    @property
    def importance_level(self) -> int:
        """Importance derived purely from the change type (0-4)."""
        return self.rank

    @property
    def label(self) -> str:
        """Human-readable name used in summaries."""
        return self.value.capitalize()

    def __lt__(self, other: object) -> bool:
        if isinstance(other, ChangeType):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other: object) -> bool:
        if isinstance(other, ChangeType):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other: object) -> bool:
        if isinstance(other, ChangeType):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other: object) -> bool:
        if isinstance(other, ChangeType):
            return self.rank >= other.rank
        return NotImplemented
