"""Redis pool backing the quota counters."""

import redis.asyncio as redis
from redis.exceptions import RedisError

_pool: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 50) -> redis.Redis:
    """Create the pool. No connection is opened until the first command."""
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    return _pool


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


async def redis_status() -> str:
    """``memory`` when no pool is configured, else ``ok`` or ``degraded``."""
    if _pool is None:
        return "memory"
    try:
        await _pool.ping()
    except (RedisError, OSError):
        return "degraded"
    return "ok"
