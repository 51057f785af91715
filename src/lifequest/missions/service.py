"""Mission lifecycle: start, step completion, completion and reward settlement.

Start and completion are serialized per (user, mission) with an in-process
keyed lock; every state change is also a conditional update guarded by the
current status, so concurrent workers cannot both win a transition.

Settlement is tracked with an explicit ``credited`` flag on the user
mission. The flag is claimed with a conditional update before any balance
moves, so a reward is applied at most once even if ``settle`` is retried
or called concurrently. A credit that fails partway is reversed and the
flag released, leaving the mission completed and uncredited.
"""

from __future__ import annotations

import logging
from typing import Any

from lifequest.errors import (
    ConflictError,
    MissionAlreadyActive,
    MissionNotActive,
    MissionNotFound,
    StepNotFound,
    StorageError,
)
from lifequest.ledger.service import Ledger, LifeScoreReason
from lifequest.missions.locks import KeyedLock
from lifequest.missions.state_machine import MissionStatus, StepStatus, validate_transition
from lifequest.missions.steps import build_steps
from lifequest.storage.backend import OrderBy, Row, new_id, utcnow
from lifequest.storage.resilient import ResilientStorage

logger = logging.getLogger(__name__)


def coin_reward_for(mission: Row) -> int:
    """Explicit coin reward, or 10% of the XP reward when none is set."""
    return int(mission.get("coin_reward") or 0) or int(mission.get("xp_reward") or 0) // 10


def adhoc_mission(mission_id: str) -> Row:
    return {
        "id": mission_id,
        "title": mission_id,
        "description": None,
        "category": "health",
        "difficulty": "easy",
        "xp_reward": 10,
        "lifescore_impact": 2,
        "coin_reward": 10,
        "is_active": True,
    }


class MissionService:
    """Per-user mission state machine on top of the resilient storage."""

    def __init__(
        self,
        storage: ResilientStorage,
        ledger: Ledger,
        step_count: int = 3,
        allow_adhoc: bool = False,
        locks: KeyedLock | None = None,
    ) -> None:
        self._storage = storage
        self._ledger = ledger
        self._step_count = step_count
        self._allow_adhoc = allow_adhoc
        self._locks = locks or KeyedLock()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_missions(self) -> list[Row]:
        return await self._storage.select(
            "missions",
            filters={"is_active": True},
            order_by=OrderBy("id"),
            expect_rows=True,
        )

    async def get_mission(self, mission_id: str) -> Row:
        rows = await self._storage.select("missions", filters={"id": mission_id}, expect_rows=True)
        if rows:
            return rows[0]
        if self._allow_adhoc:
            logger.info("Using ad-hoc mission template for %s", mission_id)
            return adhoc_mission(mission_id)
        raise MissionNotFound

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user_mission(self, user_mission_id: str) -> Row | None:
        rows = await self._storage.select("user_missions", filters={"id": user_mission_id}, fallback_on_error=False)
        return rows[0] if rows else None

    async def list_user_missions(self, user_id: str, status: str | None = None) -> list[Row]:
        filters: dict[str, Any] = {"user_id": user_id}
        if status is not None:
            filters["status"] = MissionStatus(status).value
        return await self._storage.select(
            "user_missions",
            filters=filters,
            order_by=OrderBy("created_at", descending=True),
            fallback_on_error=False,
        )

    async def get_steps(self, user_mission_id: str) -> list[Row]:
        return await self._storage.select(
            "mission_steps",
            filters={"user_mission_id": user_mission_id},
            order_by=OrderBy("step_number"),
            fallback_on_error=False,
        )

    async def _active_run(self, user_id: str, mission_id: str) -> Row | None:
        rows = await self._storage.select(
            "user_missions",
            filters={"user_id": user_id, "mission_id": mission_id, "status": MissionStatus.ACTIVE.value},
            fallback_on_error=False,
        )
        return rows[0] if rows else None

    async def _uncredited_run(self, user_id: str, mission_id: str) -> Row | None:
        rows = await self._storage.select(
            "user_missions",
            filters={
                "user_id": user_id,
                "mission_id": mission_id,
                "status": MissionStatus.COMPLETED.value,
                "credited": False,
            },
            fallback_on_error=False,
        )
        return rows[0] if rows else None

    async def are_all_steps_completed(self, user_mission_id: str) -> bool:
        """True iff exactly ``step_count`` steps exist and all are completed.

        Fewer steps means a partial or corrupted creation and counts as
        incomplete.
        """
        steps = await self.get_steps(user_mission_id)
        return len(steps) == self._step_count and all(
            s["status"] == StepStatus.COMPLETED.value for s in steps
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self, user_id: str, mission_id: str) -> dict:
        """Start a mission and create its step plan."""
        mission = await self.get_mission(mission_id)
        async with self._locks.hold((user_id, mission_id)):
            if await self._active_run(user_id, mission_id) is not None:
                raise MissionAlreadyActive
            validate_transition(MissionStatus.AVAILABLE.value, MissionStatus.ACTIVE.value)
            await self._ledger.get_or_create_user(user_id)

            now = utcnow()
            run = {
                "id": new_id(),
                "user_id": user_id,
                "mission_id": mission_id,
                "status": MissionStatus.ACTIVE.value,
                "started_at": now,
                "completed_at": None,
                "completion_data": None,
                "credited": False,
                "xp_earned": 0,
                "coins_earned": 0,
                "lifescore_change": 0,
                "created_at": now,
            }
            steps = [
                {
                    "id": new_id(),
                    "user_mission_id": run["id"],
                    "user_id": user_id,
                    "status": StepStatus.PENDING.value,
                    "completed_at": None,
                    "created_at": now,
                    **template,
                }
                for template in build_steps(mission.get("category", ""), self._step_count)
            ]
            # The run and its steps land together or not at all
            try:
                await self._storage.insert_batch([("user_missions", [run]), ("mission_steps", steps)])
            except ConflictError as exc:
                raise MissionAlreadyActive from exc

        logger.info("Mission started user=%s mission=%s run=%s", user_id, mission_id, run["id"])
        return {"user_mission": run, "mission": mission, "steps": steps}

    async def complete_step(self, step_id: str, user_id: str | None = None) -> dict:
        """Mark one step completed. Repeating the call on a completed step is a no-op."""
        rows = await self._storage.select("mission_steps", filters={"id": step_id}, fallback_on_error=False)
        if not rows or (user_id is not None and rows[0]["user_id"] != user_id):
            raise StepNotFound
        step = rows[0]

        if step["status"] != StepStatus.COMPLETED.value:
            run = await self.get_user_mission(step["user_mission_id"])
            if run is None or run["status"] != MissionStatus.ACTIVE.value:
                raise StepNotFound
            updated = await self._storage.update(
                "mission_steps",
                {"id": step_id, "status": StepStatus.PENDING.value},
                {"status": StepStatus.COMPLETED.value, "completed_at": utcnow()},
            )
            if updated:
                step = updated[0]
                logger.info("Step completed run=%s step=%d", step["user_mission_id"], step["step_number"])
            else:
                # Lost a race with a concurrent completion of the same step
                rows = await self._storage.select("mission_steps", filters={"id": step_id}, fallback_on_error=False)
                step = rows[0]

        steps = await self.get_steps(step["user_mission_id"])
        completed = sum(1 for s in steps if s["status"] == StepStatus.COMPLETED.value)
        return {
            "step": step,
            "completed_steps": completed,
            "total_steps": self._step_count,
            "all_completed": len(steps) == self._step_count and completed == self._step_count,
        }

    async def complete(
        self,
        user_id: str,
        mission_id: str,
        completion_data: dict[str, Any] | None = None,
    ) -> dict:
        """Finish an active, fully stepped mission and settle its reward.

        With no active run, a completed run whose credit never landed is
        settled instead, so a retried request recovers a failed settlement.
        """
        mission = await self.get_mission(mission_id)
        async with self._locks.hold((user_id, mission_id)):
            run = await self._active_run(user_id, mission_id)
            if run is None:
                run = await self._uncredited_run(user_id, mission_id)
                if run is None:
                    raise MissionNotActive
                logger.info("Retrying settlement user=%s mission=%s run=%s", user_id, mission_id, run["id"])
            else:
                if not await self.are_all_steps_completed(run["id"]):
                    raise MissionNotActive("Complete all mission steps first")
                validate_transition(run["status"], MissionStatus.COMPLETED.value)

                updated = await self._storage.update(
                    "user_missions",
                    {"id": run["id"], "status": MissionStatus.ACTIVE.value},
                    {
                        "status": MissionStatus.COMPLETED.value,
                        "completed_at": utcnow(),
                        "completion_data": completion_data or {},
                    },
                )
                if not updated:
                    raise MissionNotActive
                run = updated[0]
                logger.info("Mission completed user=%s mission=%s run=%s", user_id, mission_id, run["id"])

            settlement = await self.settle(run["id"], mission=mission)

        return {
            "user_mission": await self.get_user_mission(run["id"]) or run,
            "mission": mission,
            "settlement": settlement,
        }

    async def settle(self, user_mission_id: str, mission: Row | None = None) -> dict:
        """Credit a completed mission's reward exactly once.

        Safe to re-run: a mission whose ``credited`` flag is already set
        returns ``applied=False`` without touching any balance. If crediting
        fails partway, the applied parts are reversed and the claim is
        released, so a later ``settle`` can apply the full reward.
        """
        run = await self.get_user_mission(user_mission_id)
        if run is None or run["status"] != MissionStatus.COMPLETED.value:
            raise MissionNotActive
        if mission is None:
            mission = await self.get_mission(run["mission_id"])

        xp = int(mission.get("xp_reward") or 0)
        coins = coin_reward_for(mission)
        impact = int(mission.get("lifescore_impact") or 0)
        result: dict[str, Any] = {
            "applied": False,
            "xp": xp,
            "coins": coins,
            "lifescore_change": impact,
            "level_up": False,
        }
        if run.get("credited"):
            return result

        claimed = await self._storage.update(
            "user_missions",
            {"id": user_mission_id, "status": MissionStatus.COMPLETED.value, "credited": False},
            {"credited": True, "xp_earned": xp, "coins_earned": coins, "lifescore_change": impact},
        )
        if not claimed:
            return result

        user_id = run["user_id"]
        xp_result = None
        coins_credited = 0
        try:
            xp_result = await self._ledger.award_xp(user_id, xp)
            balance = await self._ledger.adjust_coins(user_id, coins)
            coins_credited = coins
            lifescore = await self._ledger.adjust_lifescore(user_id, impact, LifeScoreReason.MISSION_COMPLETE)
        except StorageError:
            await self._release_credit(
                user_mission_id, user_id, xp_result.xp_gained if xp_result else 0, coins_credited
            )
            raise
        logger.info(
            "Mission settled user=%s run=%s xp=%d coins=%d lifescore=%+d",
            user_id,
            user_mission_id,
            xp,
            coins,
            impact,
        )

        balances: dict[str, Any] = {
            "coins": balance,
            "xp": xp_result.new_xp,
            "level": xp_result.new_level,
            "lifescore": lifescore,
        }
        try:
            streak = await self._ledger.update_streak(user_id)
        except StorageError:
            # The reward stands without the streak step
            logger.warning("Streak update failed user=%s run=%s", user_id, user_mission_id, exc_info=True)
        else:
            balances.update(current_streak=streak.current_streak, longest_streak=streak.longest_streak)

        result.update(applied=True, level_up=xp_result.level_up, balances=balances)
        return result

    async def _release_credit(self, user_mission_id: str, user_id: str, xp: int, coins: int) -> None:
        """Undo a partly applied credit and hand the claim back."""
        try:
            if coins:
                await self._ledger.adjust_coins(user_id, -coins)
            if xp:
                await self._ledger.award_xp(user_id, -xp)
            await self._storage.update(
                "user_missions",
                {"id": user_mission_id, "credited": True},
                {"credited": False, "xp_earned": 0, "coins_earned": 0, "lifescore_change": 0},
            )
        except StorageError:
            logger.error(
                "Credit release failed user=%s run=%s xp=%d coins=%d", user_id, user_mission_id, xp, coins
            )
            raise
        logger.warning("Credit released user=%s run=%s xp=%d coins=%d", user_id, user_mission_id, xp, coins)
