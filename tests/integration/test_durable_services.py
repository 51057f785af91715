"""Mission and ledger flows on the durable store, with the memory store as fallback."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from lifequest.config import Settings
from lifequest.dependencies import Services, build_services
from lifequest.errors import InsufficientCoins, MissionAlreadyActive, StorageError
from lifequest.missions import service as mission_service
from lifequest.quota.store import InMemoryCounterStore
from lifequest.storage.durable import DurableBackend
from lifequest.storage.memory import InMemoryBackend
from lifequest.storage.resilient import ResilientStorage
from lifequest.storage.seed import seed_catalog, seed_fallback

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]


@pytest_asyncio.fixture
async def durable_services(settings: Settings, durable: DurableBackend) -> Services:
    fallback = InMemoryBackend()
    await seed_fallback(fallback)
    await seed_catalog(durable)
    storage = ResilientStorage(durable, fallback)
    return build_services(settings, storage, InMemoryCounterStore())


async def test_mission_scenario(durable_services: Services):
    """Start, three steps, complete: rewards credited once."""
    missions = durable_services.missions
    started = await missions.start("u1", "mission-safe-driving-1")
    assert [s["step_number"] for s in started["steps"]] == [1, 2, 3]

    with pytest.raises(MissionAlreadyActive):
        await missions.start("u1", "mission-safe-driving-1")

    run_id = started["user_mission"]["id"]
    for step in started["steps"][:2]:
        await missions.complete_step(step["id"], user_id="u1")
    assert not await missions.are_all_steps_completed(run_id)
    await missions.complete_step(started["steps"][2]["id"], user_id="u1")
    assert await missions.are_all_steps_completed(run_id)

    result = await missions.complete("u1", "mission-safe-driving-1")
    assert result["settlement"]["applied"]
    assert (await missions.settle(run_id))["applied"] is False

    balances = await durable_services.ledger.get_balances("u1")
    assert balances["xp"] == 75
    assert balances["coins"] == 7
    assert balances["lifescore"] == 15
    history = await durable_services.ledger.lifescore_history("u1")
    assert [(e["old_score"], e["new_score"]) for e in history] == [(0, 15)]


async def test_redemption_scenario(durable_services: Services):
    ledger = durable_services.ledger
    await ledger.adjust_coins("u1", 300)
    result = await ledger.redeem_reward("u1", "reward-fuel-voucher")
    assert result["coins"] == 100

    with pytest.raises(InsufficientCoins):
        await ledger.redeem_reward("u1", "reward-safe-driver-badge")
    assert (await ledger.get_balances("u1"))["coins"] == 100
    assert len(await ledger.list_redemptions("u1")) == 1


async def test_listings_match_fallback(durable_services: Services, settings: Settings):
    """Catalog listings have the same shape from either store."""
    durable_rewards = await durable_services.catalog.list_active()

    memory = InMemoryBackend()
    await seed_fallback(memory)
    memory_services = build_services(settings, ResilientStorage(None, memory), InMemoryCounterStore())
    memory_rewards = await memory_services.catalog.list_active()

    assert [r.model_dump() for r in durable_rewards] == [r.model_dump() for r in memory_rewards]
    assert len(await durable_services.missions.list_missions()) == len(await memory_services.missions.list_missions())


async def test_empty_durable_leaderboard_uses_fallback(durable_services: Services):
    entries = await durable_services.leaderboard.top_by_lifescore()
    assert [e["id"] for e in entries] == ["u-top1", "u-top2", "u-top3"]


async def test_start_is_atomic(durable_services: Services, durable: DurableBackend, monkeypatch):
    """A step write that fails inside the transaction leaves no run behind."""
    real_build_steps = mission_service.build_steps

    def broken_steps(category, count):
        # The driver cannot bind this value, so the statement fails after the run row was sent
        return [{**step, "description": object()} for step in real_build_steps(category, count)]

    monkeypatch.setattr(mission_service, "build_steps", broken_steps)
    with pytest.raises(StorageError):
        await durable_services.missions.start("u1", "mission-safe-driving-1")
    assert await durable.select("user_missions") == []
    assert await durable.select("mission_steps") == []

    monkeypatch.undo()
    started = await durable_services.missions.start("u1", "mission-safe-driving-1")
    assert len(await durable.select("mission_steps", filters={"user_mission_id": started["user_mission"]["id"]})) == 3


async def test_unreachable_store_is_not_a_client_error(durable_services: Services, durable: DurableBackend):
    """Per-user mission state has no fallback copy, so reads surface the outage."""
    started = await durable_services.missions.start("u1", "mission-safe-driving-1")
    step_id = started["steps"][0]["id"]

    durable.select = AsyncMock(side_effect=StorageError())
    with pytest.raises(StorageError):
        await durable_services.missions.complete("u1", "mission-safe-driving-1")
    with pytest.raises(StorageError):
        await durable_services.missions.complete_step(step_id, user_id="u1")
    with pytest.raises(StorageError):
        await durable_services.ledger.get_balances("u1")

    # Catalog reads still fall back
    assert len(await durable_services.missions.list_missions()) == 5


async def test_streak_persisted(durable_services: Services):
    ledger = durable_services.ledger
    await ledger.update_streak("u1")
    await ledger.update_streak("u1")
    await ledger.update_streak("u1", increment=False)
    balances = await ledger.get_balances("u1")
    assert (balances["current_streak"], balances["longest_streak"]) == (1, 2)
