"""Tests for the SQLite lock retry decorator."""

import pytest
from sqlalchemy.exc import OperationalError

from songsync.infrastructure.persistence.retry import (
    DatabaseLockMetrics,
    is_lock_error,
    with_db_retry,
)


def _lock_error() -> OperationalError:
    return OperationalError("INSERT INTO tracks", {}, Exception("database is locked"))


@pytest.fixture(autouse=True)
def reset_metrics():
    DatabaseLockMetrics.get_instance().reset()
    yield
    DatabaseLockMetrics.get_instance().reset()


class TestIsLockError:
    """Classification of OperationalErrors."""

    def test_locked(self) -> None:
        assert is_lock_error(_lock_error())

    def test_busy(self) -> None:
        assert is_lock_error(OperationalError("x", {}, Exception("database is busy")))

    def test_other_operational_error(self) -> None:
        assert not is_lock_error(OperationalError("x", {}, Exception("no such table")))

    def test_non_operational_error(self) -> None:
        assert not is_lock_error(RuntimeError("database is locked"))


class TestWithDbRetry:
    """Retry behaviour."""

    async def test_retries_lock_errors_then_succeeds(self) -> None:
        calls = 0

        @with_db_retry(max_attempts=3, initial_delay=0.001)
        async def write() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise _lock_error()
            return "ok"

        assert await write() == "ok"
        assert calls == 3
        stats = DatabaseLockMetrics.get_instance().get_stats()
        assert stats["lock_retries"] == 2
        assert stats["lock_successes"] == 1

    async def test_gives_up_after_max_attempts(self) -> None:
        calls = 0

        @with_db_retry(max_attempts=2, initial_delay=0.001)
        async def write() -> None:
            nonlocal calls
            calls += 1
            raise _lock_error()

        with pytest.raises(OperationalError):
            await write()

        assert calls == 2
        assert DatabaseLockMetrics.get_instance().get_stats()["lock_failures"] == 1

    async def test_other_errors_fail_fast(self) -> None:
        calls = 0

        @with_db_retry(max_attempts=5, initial_delay=0.001)
        async def write() -> None:
            nonlocal calls
            calls += 1
            raise ValueError("bad data")

        with pytest.raises(ValueError):
            await write()

        assert calls == 1
