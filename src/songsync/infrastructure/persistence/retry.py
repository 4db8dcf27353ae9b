# Hey future me - SQLite only has ONE writer at a time. Ingestion writes records from many
# tasks at once, so sooner or later a writer hits "database is locked" even with the busy
# timeout (e.g. when a long transaction holds the lock past it). Those locks are temporary:
# wait, retry, done. This decorator does exactly that with exponential backoff, and only
# for lock errors - every other OperationalError fails fast.
#
# USAGE:
#   @with_db_retry(max_attempts=3)
#   async def _write_record(self, ...) -> ...:
#       async with self._db.session_scope() as session:
#           ...
#
# The decorated function must open its OWN session/transaction, because the failed one
# was rolled back and cannot be reused.
"""Database retry utilities for handling SQLite lock errors."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class DatabaseLockMetrics:
    """Track database lock events for monitoring.

    Singleton; read it with DatabaseLockMetrics.get_instance().get_stats().
    """

    _instance: DatabaseLockMetrics | None = None

    def __init__(self) -> None:
        """Initialize metrics counters."""
        self.lock_attempts: int = 0
        self.lock_successes: int = 0
        self.lock_failures: int = 0
        self.lock_retries: int = 0
        self.total_wait_time_ms: float = 0.0
        self.max_wait_time_ms: float = 0.0
        self.last_lock_event: float | None = None

    @classmethod
    def get_instance(cls) -> DatabaseLockMetrics:
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_attempt(self) -> None:
        """Record a database operation attempt."""
        self.lock_attempts += 1

    def record_success(self, wait_time_ms: float = 0.0) -> None:
        """Record a successful operation.

        Args:
            wait_time_ms: Time spent waiting for lock (0 if no wait needed)
        """
        self.lock_successes += 1
        self.total_wait_time_ms += wait_time_ms
        if wait_time_ms > self.max_wait_time_ms:
            self.max_wait_time_ms = wait_time_ms
        if wait_time_ms > 0:
            self.last_lock_event = time.time()

    def record_failure(self) -> None:
        """Record a failed operation (all retries exhausted)."""
        self.lock_failures += 1
        self.last_lock_event = time.time()
        logger.warning(
            "Database lock failure recorded (total failures: %d)", self.lock_failures
        )

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.lock_retries += 1

    def get_stats(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        return {
            "lock_attempts": self.lock_attempts,
            "lock_successes": self.lock_successes,
            "lock_failures": self.lock_failures,
            "lock_retries": self.lock_retries,
            "total_wait_time_ms": round(self.total_wait_time_ms, 2),
            "max_wait_time_ms": round(self.max_wait_time_ms, 2),
            "failure_rate": round(
                self.lock_failures / self.lock_attempts
                if self.lock_attempts > 0
                else 0,
                4,
            ),
            "last_lock_event_timestamp": self.last_lock_event,
        }

    def reset(self) -> None:
        """Reset all metrics (for testing)."""
        self.lock_attempts = 0
        self.lock_successes = 0
        self.lock_failures = 0
        self.lock_retries = 0
        self.total_wait_time_ms = 0.0
        self.max_wait_time_ms = 0.0
        self.last_lock_event = None


def is_lock_error(exception: BaseException) -> bool:
    """Check if an exception is a retryable database lock error."""
    if not isinstance(exception, OperationalError):
        return False

    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
    track_metrics: bool = True,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retrying async database operations on lock errors.

    The backoff is exponential: 0.5s → 1s → 2s → 4s (capped at max_delay).

    Args:
        max_attempts: Maximum attempts including the first one
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        backoff_factor: Multiply delay by this each retry
        track_metrics: Whether to record DatabaseLockMetrics

    Returns:
        Decorated coroutine function with automatic retry logic.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            metrics = DatabaseLockMetrics.get_instance() if track_metrics else None
            delay = initial_delay
            total_wait_ms = 0.0

            if metrics:
                metrics.record_attempt()

            for attempt in range(1, max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e) or attempt >= max_attempts:
                        if metrics:
                            metrics.record_failure()
                        if is_lock_error(e):
                            logger.error(
                                "Database locked after %d attempts, giving up: %s.%s",
                                max_attempts,
                                func.__module__,
                                func.__qualname__,
                            )
                        raise

                    if metrics:
                        metrics.record_retry()
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.1fs: %s.%s",
                        attempt,
                        max_attempts,
                        delay,
                        func.__module__,
                        func.__qualname__,
                    )
                    await asyncio.sleep(delay)
                    total_wait_ms += delay * 1000
                    delay = min(delay * backoff_factor, max_delay)
                else:
                    if metrics:
                        metrics.record_success(total_wait_ms)
                    return result

            raise RuntimeError("Unexpected state in retry decorator")

        return wrapper

    return decorator
