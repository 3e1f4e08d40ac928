"""Per-enrollment serialization.

All read-then-write work on one enrollment runs under ``EnrollmentLocks.hold``.
Inside one process an ``asyncio.Lock`` per key serializes callers; when Redis
is configured a Redis lock extends the guarantee across API workers and the
expiry sweep. Different keys never share a lock.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from uuid import UUID
from weakref import WeakValueDictionary

import structlog
from redis.exceptions import LockError

from src.core.redis import lock_key

from .errors import EnrollmentBusyError


if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


class EnrollmentLocks:
    """Keyed mutual exclusion for enrollments."""

    def __init__(
        self,
        redis: "Redis | None" = None,
        timeout_seconds: float = 10.0,
        blocking_timeout_seconds: float = 5.0,
    ):
        """Initialize lock registry.

        Args:
            redis: Optional Redis client for cross-process locking
            timeout_seconds: Lease of the Redis lock
            blocking_timeout_seconds: Max wait before EnrollmentBusyError
        """
        self.redis = redis
        self.timeout_seconds = timeout_seconds
        self.blocking_timeout_seconds = blocking_timeout_seconds
        self._local: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def _local_lock(self, key: str) -> asyncio.Lock:
        lock = self._local.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._local[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: UUID | str) -> AsyncIterator[None]:
        """Hold the lock of ``key`` for the duration of the block.

        Raises:
            EnrollmentBusyError: Lock not acquired within the blocking timeout
        """
        name = str(key)
        local = self._local_lock(name)

        try:
            await asyncio.wait_for(local.acquire(), self.blocking_timeout_seconds)
        except TimeoutError as e:
            logger.warning("enrollment_lock_timeout", key=name, scope="local")
            raise EnrollmentBusyError from e

        try:
            if self.redis is None:
                yield
                return

            distributed = self.redis.lock(
                lock_key(name),
                timeout=self.timeout_seconds,
                blocking_timeout=self.blocking_timeout_seconds,
            )
            if not await distributed.acquire():
                logger.warning("enrollment_lock_timeout", key=name, scope="redis")
                raise EnrollmentBusyError

            try:
                yield
            finally:
                try:
                    await distributed.release()
                except LockError:
                    # Lease expired before release; another holder may own it now
                    logger.warning("enrollment_lock_lost", key=name)
        finally:
            local.release()
