"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from lifequest.ai.router import router as ai_router
from lifequest.config import Settings, get_settings
from lifequest.database import close_db, get_engine, init_db, is_initialized
from lifequest.dependencies import Services, build_services
from lifequest.health.router import router as health_router
from lifequest.ledger.router import router as ledger_router
from lifequest.middleware import setup_middleware
from lifequest.missions.router import router as missions_router
from lifequest.quota.router import router as quota_router
from lifequest.quota.store import CounterStore, InMemoryCounterStore, RedisCounterStore
from lifequest.redis_client import close_redis, init_redis
from lifequest.rewards.router import router as rewards_router
from lifequest.storage.backend import StorageBackend
from lifequest.storage.durable import DurableBackend
from lifequest.storage.memory import InMemoryBackend
from lifequest.storage.resilient import ResilientStorage
from lifequest.storage.seed import seed_catalog, seed_fallback

logger = logging.getLogger(__name__)


async def _open_primary(settings: Settings) -> StorageBackend | None:
    """Connect the durable store, or None to run on the fallback only."""
    if not settings.database_url:
        logger.warning("No database configured, running on the in-memory store")
        return None
    try:
        await init_db(settings.database_url, create_schema=settings.create_schema)
    except (SQLAlchemyError, OSError):
        # Engine is kept; the store is retried per call and reads fall back meanwhile
        logger.warning("Database initialization failed, durable store degraded", exc_info=True)
    if not is_initialized():
        return None
    primary = DurableBackend(get_engine(), cas_attempts=settings.storage_cas_attempts)
    if await primary.is_available():
        await seed_catalog(primary)
    return primary


async def _open_counters(settings: Settings) -> CounterStore:
    if settings.redis_url:
        return RedisCounterStore(await init_redis(settings.redis_url))
    return InMemoryCounterStore()


async def build_runtime(settings: Settings) -> Services:
    """Open storage and counters and wire the services."""
    fallback = InMemoryBackend()
    if settings.seed_fallback_catalog:
        await seed_fallback(fallback)
    primary = await _open_primary(settings)
    storage = ResilientStorage(primary, fallback, timeout_seconds=settings.storage_timeout_seconds)
    counters = await _open_counters(settings)
    logger.info("Storage mode: %s", storage.mode)
    return build_services(settings, storage, counters)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = await build_runtime(app.state.settings)

    yield

    if owns_services:
        app.state.services = None
        await close_db()
        await close_redis()


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``services`` may be injected (tests); otherwise the lifespan builds them
    from ``settings``.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="LifeQuest API",
        description="Gamified wellbeing backend: missions, coins, XP and LifeScore",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(missions_router)
    app.include_router(rewards_router)
    app.include_router(ledger_router)
    app.include_router(quota_router)
    app.include_router(ai_router)

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "lifequest.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
