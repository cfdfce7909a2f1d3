"""
Retry with exponential backoff for SQLite lock contention.

Only storage-level transient failures are retried. Domain validation errors
are deterministic and are always surfaced to the caller on the first attempt.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clinic_teams.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for "database is locked" (sqlite3.OperationalError).

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_ms: Minimum backoff in milliseconds (default: 100)
        max_wait_ms: Maximum backoff in milliseconds (default: 1000)

    Example:
        @retry_on_sqlite_lock()
        def append_batch(...):
            conn.execute(...)
    """
    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite lock detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )


def retry_projection_rebuild(
    max_attempts: int = 3,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for rebuilding projections from the event log at start-up.

    Reading the full log can hit lock contention or transient I/O errors
    while another process is writing.
    """
    return retry(
        retry=retry_if_exception_type((sqlite3.OperationalError, OSError)),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=0.2, max=2.0),
        before_sleep=lambda retry_state: logger.warning(
            "Projection rebuild failed, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
