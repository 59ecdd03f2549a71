import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from redis.exceptions import LockNotOwnedError, RedisError

from db.config import settings
from db.redis_database import REDIS_ASYNC_CLIENT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockResult:
    key: str
    acquired: bool

    @property
    def timed_out(self) -> bool:
        return not self.acquired


class IdentityLockRegistry:
    """
    One asyncio.Lock per content identity key. Locks are dropped from the
    registry once nobody holds or waits for them.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: defaultdict[str, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: str) -> asyncio.Lock:
        self._users[key] += 1
        return self._locks.setdefault(key, asyncio.Lock())

    def _checkin(self, key: str):
        self._users[key] -= 1
        if self._users[key] <= 0:
            self._users.pop(key, None)
            self._locks.pop(key, None)

    @asynccontextmanager
    async def hold(self, key: str, timeout: float) -> AsyncIterator[LockResult]:
        """Hold the lock for key, yielding a LockResult that says whether it was acquired."""
        lock = self._checkout(key)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout)
            except asyncio.TimeoutError:
                logger.warning("Timed out after %ss waiting for lock %s", timeout, key)
                yield LockResult(key=key, acquired=False)
                return
            try:
                yield LockResult(key=key, acquired=True)
            finally:
                lock.release()
        finally:
            self._checkin(key)


class RedisLockRegistry:
    """Same contract as IdentityLockRegistry, serialized across processes through Redis."""

    def __init__(self, key_prefix: str = "content_lock:", lock_ttl: int = 60):
        self.key_prefix = key_prefix
        self.lock_ttl = lock_ttl

    @asynccontextmanager
    async def hold(self, key: str, timeout: float) -> AsyncIterator[LockResult]:
        acquired, lock = await acquire_redis_lock(
            f"{self.key_prefix}{key}",
            timeout=self.lock_ttl,
            block=True,
            blocking_timeout=timeout,
        )
        if not acquired:
            logger.warning("Timed out after %ss waiting for redis lock %s", timeout, key)
            yield LockResult(key=key, acquired=False)
            return
        try:
            yield LockResult(key=key, acquired=True)
        finally:
            await release_redis_lock(lock)


async def acquire_redis_lock(
    key: str,
    timeout: int = 60,
    block: bool = False,
    blocking_timeout: Optional[float] = None,
):
    lock = REDIS_ASYNC_CLIENT.lock(key, timeout=timeout)
    try:
        acquired = await lock.acquire(blocking=block, blocking_timeout=blocking_timeout)
    except RedisError as error:
        logger.error("Failed to acquire lock %s: %s", key, error)
        return False, lock
    return acquired, lock


async def release_redis_lock(lock):
    try:
        await lock.release()
    except LockNotOwnedError:
        logger.error("Failed to release lock, lock not owned")


_lock_registry: Optional[IdentityLockRegistry | RedisLockRegistry] = None


def get_lock_registry() -> IdentityLockRegistry | RedisLockRegistry:
    global _lock_registry
    if _lock_registry is None:
        if settings.content_store_backend == "redis":
            _lock_registry = RedisLockRegistry()
        else:
            _lock_registry = IdentityLockRegistry()
    return _lock_registry
