"""Reward catalog reads, served through the storage fallback policy."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from lifequest.errors import RewardNotFound
from lifequest.rewards.schemas import Reward, reward_adapter
from lifequest.storage.backend import OrderBy, Row
from lifequest.storage.resilient import ResilientStorage

logger = logging.getLogger(__name__)


def parse_reward(row: Row) -> Reward:
    """Turn a ``rewards`` row into its tagged variant.

    Partner offers keep their details in the ``partner_offer`` JSON column
    and coin boosts in ``boost_multiplier``; both are lifted onto the model.
    """
    data = {k: v for k, v in row.items() if k not in ("partner_offer", "boost_multiplier", "created_at")}
    offer = row.get("partner_offer") or {}
    if row.get("type") == "partner_offer":
        data["partner_name"] = offer.get("partner_name")
        data["offer_code"] = offer.get("offer_code")
    if row.get("type") == "coin_boost":
        data["multiplier"] = row.get("boost_multiplier")
    if data.get("badge_rarity") is None:
        data.pop("badge_rarity", None)
    return reward_adapter.validate_python(data)


class RewardCatalog:
    """Active rewards, durable first, seeded fallback otherwise."""

    def __init__(self, storage: ResilientStorage) -> None:
        self._storage = storage

    async def list_active(self) -> list[Reward]:
        rows = await self._storage.select(
            "rewards",
            filters={"is_active": True},
            order_by=OrderBy("coins_cost"),
            expect_rows=True,
        )
        rewards: list[Reward] = []
        for row in rows:
            try:
                rewards.append(parse_reward(row))
            except ValidationError:
                logger.warning("Skipping malformed reward row %s", row.get("id"))
        return rewards

    async def get(self, reward_id: str) -> Reward:
        rows = await self._storage.select("rewards", filters={"id": reward_id}, expect_rows=True)
        if not rows or not rows[0].get("is_active", True):
            raise RewardNotFound
        try:
            return parse_reward(rows[0])
        except ValidationError as exc:
            logger.warning("Reward %s is malformed", reward_id)
            raise RewardNotFound from exc
