"""Mission lifecycle tests: exclusivity, step gate, completion and settlement."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from lifequest.dependencies import Services
from lifequest.errors import MissionAlreadyActive, MissionNotActive, MissionNotFound, StepNotFound, StorageError
from lifequest.missions.service import MissionService, coin_reward_for

MISSION = "mission-family-3"  # xp 60, lifescore +8, 20 coins


async def _complete_all_steps(services: Services, steps: list[dict], user_id: str = "u1") -> None:
    for step in steps:
        await services.missions.complete_step(step["id"], user_id=user_id)


@pytest.mark.asyncio
class TestCatalog:
    async def test_list_missions_from_seeded_catalog(self, services: Services) -> None:
        missions = await services.missions.list_missions()
        assert len(missions) == 5
        assert all(m["is_active"] for m in missions)

    async def test_unknown_mission_without_adhoc(self, services: Services) -> None:
        strict = MissionService(services.storage, services.ledger, allow_adhoc=False)
        with pytest.raises(MissionNotFound):
            await strict.get_mission("mission-nope")

    async def test_adhoc_mission_when_allowed(self, services: Services) -> None:
        mission = await services.missions.get_mission("mission-custom")
        assert mission["id"] == "mission-custom"
        assert mission["xp_reward"] == 10


@pytest.mark.asyncio
class TestStart:
    async def test_start_creates_three_pending_steps(self, services: Services) -> None:
        result = await services.missions.start("u1", MISSION)
        steps = result["steps"]
        assert [s["step_number"] for s in steps] == [1, 2, 3]
        assert all(s["status"] == "pending" for s in steps)
        assert result["user_mission"]["status"] == "active"
        assert len(await services.missions.get_steps(result["user_mission"]["id"])) == 3

    async def test_second_start_rejected(self, services: Services) -> None:
        await services.missions.start("u1", MISSION)
        with pytest.raises(MissionAlreadyActive):
            await services.missions.start("u1", MISSION)
        assert len(await services.missions.list_user_missions("u1")) == 1

    async def test_concurrent_starts_create_one_run(self, services: Services) -> None:
        results = await asyncio.gather(
            services.missions.start("u1", MISSION),
            services.missions.start("u1", MISSION),
            return_exceptions=True,
        )
        assert sum(isinstance(r, MissionAlreadyActive) for r in results) == 1
        assert len(await services.missions.list_user_missions("u1")) == 1

    async def test_other_user_and_other_mission_unaffected(self, services: Services) -> None:
        await services.missions.start("u1", MISSION)
        await services.missions.start("u2", MISSION)
        await services.missions.start("u1", "mission-health-2")
        assert len(await services.missions.list_user_missions("u1", status="active")) == 2

    async def test_restart_after_completion(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"])
        await services.missions.complete("u1", MISSION)
        again = await services.missions.start("u1", MISSION)
        assert again["user_mission"]["id"] != started["user_mission"]["id"]

    async def test_failed_start_leaves_nothing_behind(self, services: Services) -> None:
        with patch.object(services.storage, "insert_batch", side_effect=StorageError):
            with pytest.raises(StorageError):
                await services.missions.start("u1", MISSION)
        assert await services.missions.list_user_missions("u1") == []

        started = await services.missions.start("u1", MISSION)
        assert len(started["steps"]) == 3


@pytest.mark.asyncio
class TestSteps:
    async def test_gate_opens_after_last_step(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        run_id = started["user_mission"]["id"]
        first, second, third = started["steps"]

        await services.missions.complete_step(first["id"], user_id="u1")
        progress = await services.missions.complete_step(second["id"], user_id="u1")
        assert progress["completed_steps"] == 2
        assert not progress["all_completed"]
        assert not await services.missions.are_all_steps_completed(run_id)

        progress = await services.missions.complete_step(third["id"], user_id="u1")
        assert progress["all_completed"]
        assert await services.missions.are_all_steps_completed(run_id)

    async def test_completing_step_twice_is_noop(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        step_id = started["steps"][0]["id"]
        first = await services.missions.complete_step(step_id, user_id="u1")
        second = await services.missions.complete_step(step_id, user_id="u1")
        assert second["step"]["completed_at"] == first["step"]["completed_at"]
        assert second["completed_steps"] == 1

    async def test_step_of_other_user_not_found(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        with pytest.raises(StepNotFound):
            await services.missions.complete_step(started["steps"][0]["id"], user_id="u2")

    async def test_unknown_step(self, services: Services) -> None:
        with pytest.raises(StepNotFound):
            await services.missions.complete_step("missing-step")

    async def test_missing_steps_count_as_incomplete(self, services: Services) -> None:
        """A run with fewer than three steps never passes the gate."""
        started = await services.missions.start("u1", MISSION)
        run_id = started["user_mission"]["id"]
        await _complete_all_steps(services, started["steps"][:2])
        partition = services.storage.fallback._tables["mission_steps"]["u1"]
        partition[:] = [s for s in partition if s["step_number"] != 3]
        assert not await services.missions.are_all_steps_completed(run_id)


@pytest.mark.asyncio
class TestComplete:
    async def test_complete_requires_all_steps(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"][:2])
        with pytest.raises(MissionNotActive):
            await services.missions.complete("u1", MISSION)

    async def test_complete_without_start(self, services: Services) -> None:
        with pytest.raises(MissionNotActive):
            await services.missions.complete("u1", MISSION)

    async def test_complete_credits_once(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"])

        result = await services.missions.complete("u1", MISSION, {"note": "done"})
        assert result["user_mission"]["status"] == "completed"
        assert result["user_mission"]["credited"] is True
        assert result["settlement"]["applied"]

        balances = await services.ledger.get_balances("u1")
        assert balances["coins"] == 20
        assert balances["xp"] == 60
        assert balances["lifescore"] == 8

        with pytest.raises(MissionNotActive):
            await services.missions.complete("u1", MISSION)
        assert (await services.ledger.get_balances("u1"))["coins"] == 20

    async def test_concurrent_complete_credits_once(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"])

        results = await asyncio.gather(
            services.missions.complete("u1", MISSION),
            services.missions.complete("u1", MISSION),
            return_exceptions=True,
        )
        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, MissionNotActive) for r in results) == 1

        balances = await services.ledger.get_balances("u1")
        assert balances["coins"] == 20
        assert balances["lifescore"] == 8
        history = await services.ledger.lifescore_history("u1")
        assert len(history) == 1

    async def test_settle_rerun_is_noop(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"])
        await services.missions.complete("u1", MISSION)

        again = await services.missions.settle(started["user_mission"]["id"])
        assert not again["applied"]
        assert (await services.ledger.get_balances("u1"))["xp"] == 60

    async def test_settle_requires_completed_run(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        with pytest.raises(MissionNotActive):
            await services.missions.settle(started["user_mission"]["id"])

    async def test_default_coin_reward(self, services: Services) -> None:
        started = await services.missions.start("u1", "mission-health-2")
        await _complete_all_steps(services, started["steps"])
        result = await services.missions.complete("u1", "mission-health-2")
        assert result["settlement"]["coins"] == 4
        assert (await services.ledger.get_balances("u1"))["coins"] == 4

    async def test_step_repeat_after_completion_is_noop(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"])
        await services.missions.complete("u1", MISSION)
        progress = await services.missions.complete_step(started["steps"][0]["id"], user_id="u1")
        assert progress["all_completed"]


@pytest.mark.asyncio
class TestSettlementRecovery:
    @staticmethod
    def _fail_once(real):
        calls = {"n": 0}

        async def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StorageError
            return await real(*args, **kwargs)

        return flaky

    async def _completed_with_failed_credit(self, services: Services) -> str:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"])
        flaky = self._fail_once(services.ledger.adjust_coins)
        with patch.object(services.ledger, "adjust_coins", side_effect=flaky):
            with pytest.raises(StorageError):
                await services.missions.complete("u1", MISSION)
        return started["user_mission"]["id"]

    async def test_partial_credit_is_reversed(self, services: Services) -> None:
        run_id = await self._completed_with_failed_credit(services)

        run = await services.missions.get_user_mission(run_id)
        assert run["status"] == "completed"
        assert run["credited"] is False
        balances = await services.ledger.get_balances("u1")
        assert (balances["xp"], balances["coins"], balances["lifescore"]) == (0, 0, 0)

    async def test_settle_rerun_applies_full_reward(self, services: Services) -> None:
        run_id = await self._completed_with_failed_credit(services)

        result = await services.missions.settle(run_id)
        assert result["applied"]
        balances = await services.ledger.get_balances("u1")
        assert (balances["xp"], balances["coins"], balances["lifescore"]) == (60, 20, 8)
        assert not (await services.missions.settle(run_id))["applied"]

    async def test_repeated_complete_recovers_settlement(self, services: Services) -> None:
        await self._completed_with_failed_credit(services)

        result = await services.missions.complete("u1", MISSION)
        assert result["settlement"]["applied"]
        assert result["user_mission"]["credited"] is True
        assert (await services.ledger.get_balances("u1"))["coins"] == 20

        with pytest.raises(MissionNotActive):
            await services.missions.complete("u1", MISSION)


@pytest.mark.asyncio
class TestStreak:
    async def test_each_completion_extends_streak(self, services: Services) -> None:
        for mission_id in (MISSION, "mission-health-2"):
            started = await services.missions.start("u1", mission_id)
            await _complete_all_steps(services, started["steps"])
            result = await services.missions.complete("u1", mission_id)

        assert result["settlement"]["balances"]["current_streak"] == 2
        balances = await services.ledger.get_balances("u1")
        assert (balances["current_streak"], balances["longest_streak"]) == (2, 2)

    async def test_streak_failure_keeps_reward(self, services: Services) -> None:
        started = await services.missions.start("u1", MISSION)
        await _complete_all_steps(services, started["steps"])
        with patch.object(services.ledger, "update_streak", side_effect=StorageError):
            result = await services.missions.complete("u1", MISSION)

        assert result["settlement"]["applied"]
        assert "current_streak" not in result["settlement"]["balances"]
        balances = await services.ledger.get_balances("u1")
        assert (balances["coins"], balances["current_streak"]) == (20, 0)


class TestCoinReward:
    def test_defaults_to_tenth_of_xp(self) -> None:
        assert coin_reward_for({"xp_reward": 40, "coin_reward": 0}) == 4

    def test_explicit_reward_wins(self) -> None:
        assert coin_reward_for({"xp_reward": 60, "coin_reward": 20}) == 20
