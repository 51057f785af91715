"""Service wiring and shared FastAPI dependencies."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request

from lifequest.ai.usage import AIUsageMeter
from lifequest.config import Settings
from lifequest.ledger.leaderboard import Leaderboard
from lifequest.ledger.service import Ledger
from lifequest.missions.service import MissionService
from lifequest.quota.guard import QuotaGuard, resolve_identity
from lifequest.quota.store import CounterStore
from lifequest.rewards.catalog import RewardCatalog
from lifequest.storage.resilient import ResilientStorage


@dataclass
class Services:
    settings: Settings
    storage: ResilientStorage
    catalog: RewardCatalog
    ledger: Ledger
    missions: MissionService
    leaderboard: Leaderboard
    quota: QuotaGuard
    ai_usage: AIUsageMeter


def build_services(settings: Settings, storage: ResilientStorage, counter_store: CounterStore) -> Services:
    """Wire the core components around one storage and one counter store."""
    catalog = RewardCatalog(storage)
    ledger = Ledger(
        storage,
        catalog,
        xp_per_level=settings.xp_per_level,
        lifescore_bounds=(settings.lifescore_min, settings.lifescore_max),
        redemption_write_attempts=settings.redemption_write_attempts,
    )
    missions = MissionService(
        storage,
        ledger,
        step_count=settings.mission_step_count,
        allow_adhoc=settings.allow_adhoc_missions and not settings.is_production,
    )
    quota = QuotaGuard.from_settings(settings, counter_store)
    return Services(
        settings=settings,
        storage=storage,
        catalog=catalog,
        ledger=ledger,
        missions=missions,
        leaderboard=Leaderboard(storage),
        quota=quota,
        ai_usage=AIUsageMeter(quota, ledger, coin_cost=settings.ai_call_coin_cost),
    )


def get_services(request: Request) -> Services:
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return services


@dataclass(frozen=True)
class Identity:
    """Caller identity as resolved by the upstream auth gateway."""

    user_id: str | None
    session_id: str | None
    client_ip: str | None

    @property
    def key(self) -> str:
        return resolve_identity(self.user_id, self.session_id, self.client_ip)


def identity_from_request(request: Request) -> Identity:
    return Identity(
        user_id=request.headers.get("X-User-Id") or None,
        session_id=request.headers.get("X-Session-Id") or None,
        client_ip=request.client.host if request.client else None,
    )


async def get_identity(request: Request) -> Identity:
    return identity_from_request(request)


async def get_current_user_id(request: Request) -> str:
    """User id from the trusted identity headers; session-only callers use the session id."""
    identity = identity_from_request(request)
    user_id = identity.user_id or identity.session_id
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id
