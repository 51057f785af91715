"""Fixed-window quota guard keyed by (identity, action class)."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass

import structlog

from lifequest.config import Settings
from lifequest.errors import QuotaExceeded, StorageError
from lifequest.quota.store import CounterStore, InMemoryCounterStore

logger = structlog.get_logger()

GENERAL = "general"
MISSION_COMPLETION = "mission_completion"
MISSION_GENERATION = "mission_generation"
AI_DAILY = "ai_daily"


@dataclass(frozen=True)
class QuotaPolicy:
    action_class: str
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    action_class: str
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    bypassed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def resolve_identity(
    user_id: str | None = None,
    session_id: str | None = None,
    client_ip: str | None = None,
) -> str:
    """Prefer the authenticated user, then the session, then the address."""
    if user_id:
        return f"user:{user_id}"
    if session_id:
        return f"session:{session_id}"
    if client_ip:
        return f"ip:{client_ip}"
    return "anonymous"


def policies_from_settings(settings: Settings) -> dict[str, QuotaPolicy]:
    policies = [
        QuotaPolicy(GENERAL, settings.rate_limit_requests, settings.rate_limit_window_seconds),
        QuotaPolicy(MISSION_COMPLETION, settings.mission_completion_limit, settings.mission_completion_window_seconds),
        QuotaPolicy(MISSION_GENERATION, settings.mission_generation_limit, settings.mission_generation_window_seconds),
        QuotaPolicy(AI_DAILY, settings.ai_daily_limit, settings.ai_daily_window_seconds),
    ]
    return {p.action_class: p for p in policies}


class QuotaGuard:
    """Counts actions per identity and window; rejects past the ceiling.

    Counters go to ``store``; if it fails they go to an in-process
    fallback store so limits keep applying on this instance.
    """

    def __init__(
        self,
        store: CounterStore,
        policies: dict[str, QuotaPolicy],
        bypass: bool = False,
        clock: Callable[[], float] = time.time,
        fallback_store: CounterStore | None = None,
    ) -> None:
        self._store = store
        self._fallback = fallback_store or InMemoryCounterStore(clock=clock)
        self._policies = policies
        self._bypass = bypass
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: CounterStore,
        clock: Callable[[], float] = time.time,
    ) -> QuotaGuard:
        bypass = settings.quota_dev_bypass and not settings.is_production
        if settings.quota_dev_bypass and settings.is_production:
            logger.warning("quota_bypass_ignored", environment=settings.environment)
        return cls(store, policies_from_settings(settings), bypass=bypass, clock=clock)

    @property
    def bypassed(self) -> bool:
        return self._bypass

    def policy(self, action_class: str) -> QuotaPolicy:
        try:
            return self._policies[action_class]
        except KeyError:
            raise ValueError(f"Unknown quota action class: {action_class}") from None

    def _window(self, policy: QuotaPolicy) -> tuple[int, int, int]:
        now = int(self._clock())
        window = now // policy.window_seconds
        reset_at = (window + 1) * policy.window_seconds
        return now, window, reset_at

    async def _count(self, key: str, policy: QuotaPolicy, consume: bool) -> int:
        try:
            if consume:
                return await self._store.hit(key, policy.window_seconds)
            return await self._store.peek(key)
        except StorageError:
            logger.warning("quota_store_fallback", key=key)
            if consume:
                return await self._fallback.hit(key, policy.window_seconds)
            return await self._fallback.peek(key)

    async def _decide(self, identity: str, action_class: str, consume: bool) -> QuotaDecision:
        policy = self.policy(action_class)
        now, window, reset_at = self._window(policy)
        if self._bypass:
            return QuotaDecision(True, action_class, policy.limit, policy.limit, reset_at, 0, bypassed=True)

        key = f"quota:{action_class}:{identity}:{window}"
        count = await self._count(key, policy, consume)
        allowed = count <= policy.limit if consume else count < policy.limit
        return QuotaDecision(
            allowed=allowed,
            action_class=action_class,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_at=reset_at,
            retry_after=0 if allowed else max(1, reset_at - now),
        )

    async def check(self, identity: str, action_class: str) -> QuotaDecision:
        """Count one attempt and report whether it is admitted."""
        decision = await self._decide(identity, action_class, consume=True)
        if not decision.allowed:
            logger.info("quota_rejected", identity=identity, action=action_class, retry_after=decision.retry_after)
        return decision

    async def enforce(self, identity: str, action_class: str) -> QuotaDecision:
        """Like ``check`` but raises ``QuotaExceeded`` on rejection."""
        decision = await self.check(identity, action_class)
        if not decision.allowed:
            raise QuotaExceeded(action_class, decision.limit, decision.retry_after, decision.reset_at)
        return decision

    async def status(self, identity: str, action_class: str) -> QuotaDecision:
        """Current standing without consuming an attempt."""
        return await self._decide(identity, action_class, consume=False)
