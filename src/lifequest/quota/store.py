"""Counter stores for quota windows.

``hit`` increments and returns the new count in one atomic step: Redis
``INCR`` in a pipeline with ``EXPIRE``, or a dict update with no await in
between for the in-memory store.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog
from redis.exceptions import RedisError

from lifequest.errors import StorageError

logger = structlog.get_logger()


class CounterStore(ABC):
    @abstractmethod
    async def hit(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key`` and return the new value."""

    @abstractmethod
    async def peek(self, key: str) -> int:
        """Current value of ``key`` without incrementing."""


class RedisCounterStore(CounterStore):
    def __init__(self, redis: Any) -> None:
        self._redis = redis

    async def hit(self, key: str, ttl_seconds: int) -> int:
        try:
            pipe = self._redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, ttl_seconds + 1)
            results: list[Any] = await pipe.execute()
        except (RedisError, OSError) as exc:
            logger.warning("quota_redis_failed", key=key, error=str(exc))
            raise StorageError from exc
        return int(results[0])

    async def peek(self, key: str) -> int:
        try:
            value = await self._redis.get(key)
        except (RedisError, OSError) as exc:
            logger.warning("quota_redis_failed", key=key, error=str(exc))
            raise StorageError from exc
        return int(value or 0)


class InMemoryCounterStore(CounterStore):
    """Process-local counters with TTL eviction."""

    def __init__(self, clock: Callable[[], float] = time.time, max_entries: int = 100_000) -> None:
        self._counts: dict[str, tuple[int, float]] = {}
        self._clock = clock
        self._max_entries = max_entries

    def _evict(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._counts.items() if expires_at <= now]
        for key in expired:
            del self._counts[key]
        # Hard cap to prevent unbounded growth
        while len(self._counts) > self._max_entries:
            self._counts.pop(next(iter(self._counts)))

    async def hit(self, key: str, ttl_seconds: int) -> int:
        now = self._clock()
        count, expires_at = self._counts.get(key, (0, now + ttl_seconds + 1))
        if expires_at <= now:
            count, expires_at = 0, now + ttl_seconds + 1
        count += 1
        self._counts[key] = (count, expires_at)
        if len(self._counts) > self._max_entries:
            self._evict(now)
        return count

    async def peek(self, key: str) -> int:
        entry = self._counts.get(key)
        if entry is None or entry[1] <= self._clock():
            return 0
        return entry[0]

    def reset(self) -> None:
        self._counts.clear()
