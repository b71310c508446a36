"""Exception hierarchy for change detection and version storage."""

from __future__ import annotations


class RegwatchError(Exception):
    """Base class for all errors raised by regwatch."""


class ConfigurationError(RegwatchError):
    """Invalid change detection configuration, raised at load time."""


class StorageError(RegwatchError):
    """Version store I/O failure (read or write)."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class VersionNotFoundError(StorageError):
    """The store has no version for the requested url."""


class VersionOrderError(StorageError):
    """A version was saved with a timestamp not after the latest stored one."""


class DetectionError(RegwatchError):
    """Classification or scoring could not be completed for a url."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class DetectionTimeoutError(DetectionError):
    """Timed out waiting for another detection on the same url."""


class DetectionCancelledError(DetectionError):
    """Detection was cancelled before the new version was written."""
