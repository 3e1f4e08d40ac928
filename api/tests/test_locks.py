"""Tests for per-enrollment locks."""

import asyncio
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from redis.exceptions import LockError

from src.progression.errors import EnrollmentBusyError
from src.progression.locks import EnrollmentLocks


@pytest.fixture
def mock_redis():
    """Mock Redis client whose locks are always granted."""
    redis_mock = Mock()
    lock = Mock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()
    redis_mock.lock = Mock(return_value=lock)
    return redis_mock


class TestLocalLocks:
    """In-process serialization."""

    @pytest.mark.asyncio
    async def test_same_key_serialized(self) -> None:
        locks = EnrollmentLocks()
        key = uuid4()
        events: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold(key):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self) -> None:
        locks = EnrollmentLocks(blocking_timeout_seconds=0.05)

        async with locks.hold(uuid4()):
            async with locks.hold(uuid4()):
                pass

    @pytest.mark.asyncio
    async def test_timeout_raises_busy(self) -> None:
        locks = EnrollmentLocks(blocking_timeout_seconds=0.05)
        key = uuid4()

        async with locks.hold(key):
            with pytest.raises(EnrollmentBusyError) as exc_info:
                async with locks.hold(key):
                    pass

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_released_after_error(self) -> None:
        locks = EnrollmentLocks(blocking_timeout_seconds=0.05)
        key = uuid4()

        with pytest.raises(ValueError):
            async with locks.hold(key):
                raise ValueError("boom")

        async with locks.hold(key):
            pass


class TestRedisLocks:
    """Cross-process serialization through Redis."""

    @pytest.mark.asyncio
    async def test_redis_lock_acquired_and_released(self, mock_redis) -> None:
        locks = EnrollmentLocks(
            redis=mock_redis, timeout_seconds=7, blocking_timeout_seconds=2
        )
        key = uuid4()

        async with locks.hold(key):
            pass

        mock_redis.lock.assert_called_once_with(
            f"certify:lock:{key}", timeout=7, blocking_timeout=2
        )
        lock = mock_redis.lock.return_value
        lock.acquire.assert_awaited_once()
        lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_lock_not_granted(self, mock_redis) -> None:
        mock_redis.lock.return_value.acquire = AsyncMock(return_value=False)
        locks = EnrollmentLocks(redis=mock_redis, blocking_timeout_seconds=0.05)
        key = uuid4()

        with pytest.raises(EnrollmentBusyError):
            async with locks.hold(key):
                pass

        # Local lock is free again
        mock_redis.lock.return_value.acquire = AsyncMock(return_value=True)
        async with locks.hold(key):
            pass

    @pytest.mark.asyncio
    async def test_lost_lease_does_not_fail_operation(self, mock_redis) -> None:
        mock_redis.lock.return_value.release = AsyncMock(
            side_effect=LockError("expired")
        )
        locks = EnrollmentLocks(redis=mock_redis)

        async with locks.hold(uuid4()):
            pass
