"""Application startup wiring in memory and durable modes."""

from __future__ import annotations

import pytest

from lifequest.config import Settings
from lifequest.main import create_app

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]


async def test_memory_mode_startup(settings: Settings):
    app = create_app(settings=settings)
    async with app.router.lifespan_context(app):
        services = app.state.services
        assert services.storage.mode == "fallback"
        assert len(await services.missions.list_missions()) == 5
    assert app.state.services is None


async def test_durable_mode_startup_seeds_catalog(tmp_path):
    settings = Settings(
        environment="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        redis_url="",
        log_format="console",
    )
    app = create_app(settings=settings)
    async with app.router.lifespan_context(app):
        services = app.state.services
        assert services.storage.mode == "durable"
        assert await services.storage.health() == {"storage": "ok"}
        rows = await services.storage.primary.select("rewards")
        assert len(rows) == 4
