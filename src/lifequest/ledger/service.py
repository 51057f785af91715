"""Coin, XP and LifeScore ledger.

Balances live on the ``users`` row and are only changed through the
storage layer's atomic ``adjust`` primitive, never by read-then-write.
Every LifeScore change appends a ``lifescore_history`` entry; a failed
audit write is logged and never fails the score change itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from lifequest.errors import ConflictError, InsufficientCoins, StorageError
from lifequest.ledger.levels import compute_level, level_for_xp
from lifequest.rewards.catalog import RewardCatalog
from lifequest.storage.backend import OrderBy, Row, new_id, utcnow
from lifequest.storage.resilient import ResilientStorage

logger = logging.getLogger(__name__)


class LifeScoreReason(str, Enum):
    MISSION_COMPLETE = "mission_complete"
    MANUAL_UPDATE = "manual_update"


@dataclass(frozen=True)
class XPResult:
    xp_gained: int
    new_xp: int
    new_level: int
    level_up: bool


@dataclass(frozen=True)
class StreakResult:
    current_streak: int
    longest_streak: int
    streak_broken: bool


_STREAK_CAS_ATTEMPTS = 5


class Ledger:
    """Bounded, audited balances per user."""

    def __init__(
        self,
        storage: ResilientStorage,
        catalog: RewardCatalog,
        xp_per_level: int = 100,
        lifescore_bounds: tuple[int, int] = (0, 100),
        redemption_write_attempts: int = 2,
    ) -> None:
        self._storage = storage
        self._catalog = catalog
        self._xp_per_level = xp_per_level
        self._lifescore_min, self._lifescore_max = lifescore_bounds
        self._redemption_write_attempts = max(1, redemption_write_attempts)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_or_create_user(self, user_id: str) -> Row:
        """Get or create the balance row for a user."""
        rows = await self._storage.select("users", filters={"id": user_id}, fallback_on_error=False)
        if rows:
            return rows[0]
        now = utcnow()
        row = {
            "id": user_id,
            "username": None,
            "coins": 0,
            "lifescore": 0,
            "xp": 0,
            "level": 1,
            "current_streak": 0,
            "longest_streak": 0,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self._storage.insert("users", row)
        except ConflictError:
            # Created concurrently by another request
            rows = await self._storage.select("users", filters={"id": user_id}, fallback_on_error=False)
            return rows[0]
        return row

    async def get_balances(self, user_id: str) -> dict:
        user = await self.get_or_create_user(user_id)
        return {
            "user_id": user_id,
            "coins": user["coins"],
            "lifescore": user["lifescore"],
            "xp": user["xp"],
            "level": user["level"],
            "current_streak": user.get("current_streak") or 0,
            "longest_streak": user.get("longest_streak") or 0,
            "progress": compute_level(user["xp"], self._xp_per_level),
        }

    # ------------------------------------------------------------------
    # Coins
    # ------------------------------------------------------------------

    async def adjust_coins(self, user_id: str, delta: int) -> int:
        """Add ``delta`` coins (negative to spend). Clamps at 0, returns the balance."""
        await self.get_or_create_user(user_id)
        result = await self._storage.adjust("users", {"id": user_id}, "coins", delta, floor=0)
        logger.info("Coins adjusted user=%s delta=%d %d->%d", user_id, delta, result.old, result.new)
        return result.new

    async def debit_coins(self, user_id: str, amount: int) -> int:
        """Spend exactly ``amount`` coins or raise ``InsufficientCoins``; never clamps."""
        await self.get_or_create_user(user_id)
        result = await self._storage.adjust(
            "users", {"id": user_id}, "coins", -amount, floor=0, clamp_result=False
        )
        if not result.applied:
            raise InsufficientCoins(balance=result.old, required=amount)
        return result.new

    # ------------------------------------------------------------------
    # XP
    # ------------------------------------------------------------------

    async def award_xp(self, user_id: str, amount: int) -> XPResult:
        """Add XP (negative to revoke, floored at 0) and recompute the level.

        If the level write fails the XP change is reversed before
        ``StorageError`` propagates, so callers never see XP applied
        without a result.
        """
        await self.get_or_create_user(user_id)
        result = await self._storage.adjust("users", {"id": user_id}, "xp", amount, floor=0)
        old_level = level_for_xp(result.old, self._xp_per_level)
        new_level = level_for_xp(result.new, self._xp_per_level)
        if new_level != old_level:
            try:
                # Guarded by xp so a concurrent award that moved xp sets its own level
                await self._storage.update(
                    "users", {"id": user_id, "xp": result.new}, {"level": new_level}
                )
            except StorageError:
                logger.warning("Level write failed user=%s, reverting %+d xp", user_id, result.new - result.old)
                await self._storage.adjust("users", {"id": user_id}, "xp", result.old - result.new, floor=0)
                raise
            if new_level > old_level:
                logger.info("Level up user=%s %d->%d", user_id, old_level, new_level)
        return XPResult(
            xp_gained=result.new - result.old,
            new_xp=result.new,
            new_level=new_level,
            level_up=new_level > old_level,
        )

    # ------------------------------------------------------------------
    # Streaks
    # ------------------------------------------------------------------

    async def update_streak(self, user_id: str, increment: bool = True) -> StreakResult:
        """Move the activity streak one step up (or down, floored at 0).

        ``longest_streak`` only ever grows; it is raised with a
        compare-and-set on its previous value.
        """
        await self.get_or_create_user(user_id)
        result = await self._storage.adjust(
            "users", {"id": user_id}, "current_streak", 1 if increment else -1, floor=0
        )
        longest = await self._raise_longest_streak(user_id, result.new)
        logger.info("Streak updated user=%s %d->%d longest=%d", user_id, result.old, result.new, longest)
        return StreakResult(
            current_streak=result.new,
            longest_streak=longest,
            streak_broken=not increment and result.old > 0,
        )

    async def _raise_longest_streak(self, user_id: str, streak: int) -> int:
        for _ in range(_STREAK_CAS_ATTEMPTS):
            rows = await self._storage.select("users", filters={"id": user_id}, fallback_on_error=False)
            longest = int(rows[0].get("longest_streak") or 0)
            if streak <= longest:
                return longest
            updated = await self._storage.update(
                "users", {"id": user_id, "longest_streak": longest}, {"longest_streak": streak}
            )
            if updated:
                return streak
        logger.error("Longest streak update kept losing races user=%s", user_id)
        raise StorageError

    # ------------------------------------------------------------------
    # LifeScore
    # ------------------------------------------------------------------

    async def adjust_lifescore(
        self,
        user_id: str,
        delta: int,
        reason: LifeScoreReason | str = LifeScoreReason.MANUAL_UPDATE,
    ) -> int:
        """Apply a bounded LifeScore change and append the audit entry."""
        reason = LifeScoreReason(reason)
        await self.get_or_create_user(user_id)
        result = await self._storage.adjust(
            "users",
            {"id": user_id},
            "lifescore",
            delta,
            floor=self._lifescore_min,
            ceiling=self._lifescore_max,
        )
        entry = {
            "id": new_id(),
            "user_id": user_id,
            "old_score": result.old,
            "new_score": result.new,
            "change_reason": reason.value,
            "created_at": utcnow(),
        }
        try:
            await self._storage.insert("lifescore_history", entry, best_effort=True)
        except (StorageError, ConflictError):
            logger.warning("LifeScore audit write failed user=%s reason=%s", user_id, reason.value, exc_info=True)
        return result.new

    async def lifescore_history(self, user_id: str, limit: int = 50) -> list[Row]:
        return await self._storage.select(
            "lifescore_history",
            filters={"user_id": user_id},
            order_by=OrderBy("created_at", descending=True),
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Redemption
    # ------------------------------------------------------------------

    async def redeem_reward(self, user_id: str, reward_id: str) -> dict:
        """Redeem a catalog reward.

        1. Conditionally debit ``coins_cost`` (rejects, never clamps)
        2. Credit the reward's XP
        3. Write the redemption record, retrying on storage failure
        If step 2 or 3 cannot complete, the debit and any XP are reversed
        and ``StorageError`` propagates.
        """
        reward = await self._catalog.get(reward_id)
        balance = await self.debit_coins(user_id, reward.coins_cost)

        record = {
            "id": new_id(),
            "user_id": user_id,
            "reward_id": reward.id,
            "coins_spent": reward.coins_cost,
            "redeemed_at": utcnow(),
        }
        xp_awarded = 0
        try:
            if reward.xp_reward:
                await self.award_xp(user_id, reward.xp_reward)
                xp_awarded = reward.xp_reward
            await self._write_redemption(record)
        except StorageError:
            await self._rollback_redemption(user_id, reward.coins_cost, xp_awarded)
            raise

        user = await self.get_or_create_user(user_id)
        logger.info("Reward redeemed user=%s reward=%s cost=%d", user_id, reward.id, reward.coins_cost)
        return {
            "redemption": record,
            "coins": user.get("coins", balance),
            "xp": user["xp"],
            "level": user["level"],
        }

    async def _write_redemption(self, record: Row) -> None:
        for attempt in range(1, self._redemption_write_attempts + 1):
            try:
                await self._storage.insert("user_rewards", record)
                return
            except ConflictError:
                # Same id already stored: an earlier attempt landed
                return
            except StorageError:
                logger.warning(
                    "Redemption write failed user=%s attempt=%d/%d",
                    record["user_id"],
                    attempt,
                    self._redemption_write_attempts,
                )
        raise StorageError

    async def _rollback_redemption(self, user_id: str, coins: int, xp: int) -> None:
        try:
            await self._storage.adjust("users", {"id": user_id}, "coins", coins, floor=0)
            if xp:
                await self.award_xp(user_id, -xp)
        except StorageError:
            logger.error("Redemption rollback failed user=%s coins=%d xp=%d", user_id, coins, xp)
            raise
        logger.warning("Redemption rolled back user=%s coins=%d xp=%d", user_id, coins, xp)

    async def list_redemptions(self, user_id: str) -> list[Row]:
        return await self._storage.select(
            "user_rewards",
            filters={"user_id": user_id},
            order_by=OrderBy("redeemed_at", descending=True),
            fallback_on_error=False,
        )
