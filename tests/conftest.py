"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from lifequest.config import Settings
from lifequest.db.base import Base
from lifequest.dependencies import Services, build_services
from lifequest.main import create_app
from lifequest.quota.store import InMemoryCounterStore
from lifequest.storage.durable import DurableBackend
from lifequest.storage.memory import InMemoryBackend
from lifequest.storage.resilient import ResilientStorage
from lifequest.storage.seed import seed_fallback


class FakeClock:
    """Settable clock for quota window tests."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Memory-mode development settings, isolated from the environment."""
    return Settings(
        environment="development",
        database_url="",
        redis_url="",
        log_format="console",
        quota_dev_bypass=False,
        ai_call_coin_cost=0,
    )


@pytest_asyncio.fixture
async def fallback_store() -> InMemoryBackend:
    store = InMemoryBackend()
    await seed_fallback(store)
    return store


@pytest_asyncio.fixture
async def storage(fallback_store: InMemoryBackend) -> ResilientStorage:
    """Storage with no primary: everything served by the seeded memory store."""
    return ResilientStorage(None, fallback_store)


@pytest_asyncio.fixture
async def services(settings: Settings, storage: ResilientStorage) -> Services:
    return build_services(settings, storage, InMemoryCounterStore())


@pytest_asyncio.fixture
async def client(settings: Settings, services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against an app with injected memory-mode services."""
    app = create_app(settings=settings, services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the full schema created."""
    import lifequest.db.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'lifequest.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def durable(sqlite_engine: AsyncEngine) -> DurableBackend:
    return DurableBackend(sqlite_engine)

