"""Quota guard tests: limits, retry-after, window rollover and store fallback."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from lifequest.config import Settings
from lifequest.errors import QuotaExceeded, StorageError
from lifequest.quota.guard import (
    AI_DAILY,
    GENERAL,
    MISSION_COMPLETION,
    MISSION_GENERATION,
    QuotaGuard,
    QuotaPolicy,
    policies_from_settings,
    resolve_identity,
)
from lifequest.quota.store import InMemoryCounterStore, RedisCounterStore


def _guard(clock, limit: int = 3, window: int = 60, **kwargs) -> QuotaGuard:
    policies = {"test": QuotaPolicy("test", limit, window)}
    return QuotaGuard(InMemoryCounterStore(clock=clock), policies, clock=clock, **kwargs)


class TestIdentity:
    def test_user_preferred(self):
        assert resolve_identity("u1", "s1", "10.0.0.1") == "user:u1"

    def test_session_then_ip(self):
        assert resolve_identity(None, "s1", "10.0.0.1") == "session:s1"
        assert resolve_identity(None, None, "10.0.0.1") == "ip:10.0.0.1"

    def test_anonymous(self):
        assert resolve_identity() == "anonymous"


class TestPolicies:
    def test_development_defaults(self):
        policies = policies_from_settings(Settings(environment="development"))
        assert policies[GENERAL].limit == 1000
        assert policies[GENERAL].window_seconds == 900
        assert policies[MISSION_COMPLETION].limit == 50
        assert policies[MISSION_GENERATION].window_seconds == 3600
        assert policies[AI_DAILY].window_seconds == 86_400
        assert policies[AI_DAILY].limit == 60

    def test_production_general_limit(self):
        policies = policies_from_settings(Settings(environment="production"))
        assert policies[GENERAL].limit == 100


@pytest.mark.asyncio
class TestLimits:
    async def test_admits_up_to_limit(self, clock):
        guard = _guard(clock)
        decisions = [await guard.check("user:u1", "test") for _ in range(3)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]

    async def test_rejects_past_limit_with_retry_after(self, clock):
        guard = _guard(clock)
        for _ in range(3):
            await guard.check("user:u1", "test")
        clock.advance(15)
        decision = await guard.check("user:u1", "test")
        assert not decision.allowed
        assert decision.remaining == 0
        assert 0 < decision.retry_after <= 60
        assert decision.reset_at == (int(clock()) // 60 + 1) * 60

    async def test_enforce_raises(self, clock):
        guard = _guard(clock, limit=1)
        await guard.enforce("user:u1", "test")
        with pytest.raises(QuotaExceeded) as exc_info:
            await guard.enforce("user:u1", "test")
        assert exc_info.value.retry_after >= 1
        assert exc_info.value.to_dict()["action"] == "test"

    async def test_identities_are_independent(self, clock):
        guard = _guard(clock, limit=1)
        assert (await guard.check("user:u1", "test")).allowed
        assert (await guard.check("user:u2", "test")).allowed
        assert not (await guard.check("user:u1", "test")).allowed

    async def test_window_rollover_resets(self, clock):
        guard = _guard(clock, limit=1)
        await guard.check("user:u1", "test")
        assert not (await guard.check("user:u1", "test")).allowed
        clock.advance(60)
        assert (await guard.check("user:u1", "test")).allowed

    async def test_status_does_not_consume(self, clock):
        guard = _guard(clock, limit=2)
        await guard.check("user:u1", "test")
        for _ in range(5):
            status = await guard.status("user:u1", "test")
            assert status.allowed
            assert status.remaining == 1

    async def test_unknown_action_class(self, clock):
        guard = _guard(clock)
        with pytest.raises(ValueError):
            await guard.check("user:u1", "nope")


@pytest.mark.asyncio
class TestBypass:
    async def test_bypass_in_development(self, clock):
        settings = Settings(environment="development", quota_dev_bypass=True, mission_completion_limit=1)
        guard = QuotaGuard.from_settings(settings, InMemoryCounterStore(clock=clock), clock=clock)
        for _ in range(5):
            decision = await guard.check("user:u1", MISSION_COMPLETION)
            assert decision.allowed
            assert decision.bypassed

    async def test_bypass_ignored_in_production(self, clock):
        settings = Settings(environment="production", quota_dev_bypass=True, mission_completion_limit=1)
        guard = QuotaGuard.from_settings(settings, InMemoryCounterStore(clock=clock), clock=clock)
        assert not guard.bypassed
        assert (await guard.check("user:u1", MISSION_COMPLETION)).allowed
        assert not (await guard.check("user:u1", MISSION_COMPLETION)).allowed


@pytest.mark.asyncio
class TestRedisStore:
    def _redis(self, results=None, error=None) -> MagicMock:
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=results, side_effect=error)
        redis = MagicMock()
        redis.pipeline.return_value = pipe
        redis.get = AsyncMock(return_value="4", side_effect=error)
        return redis

    async def test_hit_uses_incr_and_expire(self):
        redis = self._redis(results=[3, True])
        store = RedisCounterStore(redis)
        assert await store.hit("quota:test:user:u1:1", 60) == 3
        pipe = redis.pipeline.return_value
        pipe.incr.assert_called_once_with("quota:test:user:u1:1")
        pipe.expire.assert_called_once_with("quota:test:user:u1:1", 61)

    async def test_peek(self):
        store = RedisCounterStore(self._redis())
        assert await store.peek("k") == 4

    async def test_failure_becomes_storage_error(self):
        store = RedisCounterStore(self._redis(error=RedisConnectionError("down")))
        with pytest.raises(StorageError):
            await store.hit("k", 60)

    async def test_guard_falls_back_to_memory_counters(self, clock):
        """Limits keep applying on this instance when Redis is down."""
        store = RedisCounterStore(self._redis(error=RedisConnectionError("down")))
        guard = QuotaGuard(store, {"test": QuotaPolicy("test", 2, 60)}, clock=clock)
        assert (await guard.check("user:u1", "test")).allowed
        assert (await guard.check("user:u1", "test")).allowed
        assert not (await guard.check("user:u1", "test")).allowed


@pytest.mark.asyncio
class TestMemoryStore:
    async def test_expiry(self, clock):
        store = InMemoryCounterStore(clock=clock)
        assert await store.hit("k", 10) == 1
        assert await store.hit("k", 10) == 2
        clock.advance(12)
        assert await store.peek("k") == 0
        assert await store.hit("k", 10) == 1

    async def test_entry_cap(self, clock):
        store = InMemoryCounterStore(clock=clock, max_entries=2)
        for key in ("a", "b", "c"):
            await store.hit(key, 10)
        assert len(store._counts) <= 2
