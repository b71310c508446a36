"""Retry logic with structured logging using tenacity."""

from __future__ import annotations

import functools
import sqlite3
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from regwatch.utils.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)

# SQLite reports lock contention as OperationalError with these messages.
_TRANSIENT_SQLITE_MESSAGES: tuple[str, ...] = (
    "database is locked",
    "database table is locked",
    "database is busy",
)


def is_transient_storage_error(exc: BaseException) -> bool:
    """Return True for storage errors worth retrying (lock contention, disk I/O hiccups)."""
    if isinstance(exc, sqlite3.OperationalError):
        message = str(exc).lower()
        return any(fragment in message for fragment in _TRANSIENT_SQLITE_MESSAGES)
    return isinstance(exc, TimeoutError)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempt with structured context."""
    logger.warning(
        "retrying_storage_operation",
        attempt=retry_state.attempt_number,
        function=getattr(retry_state.fn, "__name__", "unknown"),
        error=str(retry_state.outcome.exception()) if retry_state.outcome else "unknown",
    )


def retry_with_logging(
    max_attempts: int = 3,
    min_wait: float = 0.05,
    max_wait: float = 1.0,
    max_delay: float | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator retrying transient storage errors with exponential backoff.

    Only lock contention and timeouts are retried; any other exception is
    raised on the first attempt. With max_delay set, no new attempt starts
    once that many seconds have passed. After the last attempt the original
    exception is re-raised.
    """
    stop = stop_after_attempt(max(1, max_attempts))
    if max_delay is not None:
        stop = stop | stop_after_delay(max_delay)

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @retry(
            stop=stop,
            wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
            retry=retry_if_exception(is_transient_storage_error),
            before_sleep=_log_retry,
            reraise=True,
        )
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
