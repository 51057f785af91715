"""Static seed catalog: missions, rewards and demo leaderboard users.

The fallback store is always seeded with this data so listings stay
non-empty when the durable store is down or not yet populated. The
durable store is seeded once, only when its catalog tables are empty.
"""

from __future__ import annotations

import logging

from lifequest.errors import StorageError
from lifequest.storage.backend import Row, StorageBackend, utcnow

logger = logging.getLogger(__name__)

MISSION_SEED_DATA: list[dict] = [
    {
        "id": "mission-safe-driving-1",
        "title": "Safe Driving: 7-day Challenge",
        "description": "Drive safely for a full week and review your motor cover.",
        "category": "safe_driving",
        "difficulty": "medium",
        "xp_reward": 75,
        "lifescore_impact": 15,
        "coin_reward": 0,
    },
    {
        "id": "mission-health-2",
        "title": "Daily Health Check",
        "description": "Book, attend and upload a preventive health checkup.",
        "category": "health",
        "difficulty": "easy",
        "xp_reward": 40,
        "lifescore_impact": 10,
        "coin_reward": 0,
    },
    {
        "id": "mission-family-3",
        "title": "Protect Your Family",
        "description": "Find and close the gaps in your family's coverage.",
        "category": "family_protection",
        "difficulty": "medium",
        "xp_reward": 60,
        "lifescore_impact": 8,
        "coin_reward": 20,
    },
    {
        "id": "mission-financial-4",
        "title": "Financial Guardian",
        "description": "Assess your financial protection and plan improvements.",
        "category": "financial_guardian",
        "difficulty": "hard",
        "xp_reward": 100,
        "lifescore_impact": 12,
        "coin_reward": 25,
    },
    {
        "id": "mission-lifestyle-5",
        "title": "Lifestyle Explorer",
        "description": "Compare plans that fit the way you live.",
        "category": "lifestyle",
        "difficulty": "easy",
        "xp_reward": 30,
        "lifescore_impact": 5,
        "coin_reward": 0,
    },
]

REWARD_SEED_DATA: list[dict] = [
    {
        "id": "reward-fuel-voucher",
        "type": "partner_offer",
        "title": "Fuel Voucher",
        "description": "Save on fuel at partner stations",
        "coins_cost": 200,
        "xp_reward": 20,
        "partner_offer": {"partner_name": "Woqod", "offer_code": "FUEL-QIC-10"},
    },
    {
        "id": "reward-safe-driver-badge",
        "type": "badge",
        "title": "Safe Driver Badge",
        "description": "Show off your safe driving streak",
        "coins_cost": 250,
        "xp_reward": 25,
        "badge_rarity": "rare",
    },
    {
        "id": "reward-gym-discount",
        "type": "partner_offer",
        "title": "Gym Membership Discount",
        "description": "Stay fit and save",
        "coins_cost": 300,
        "xp_reward": 30,
        "partner_offer": {"partner_name": "FitHub", "offer_code": "GYM-QIC-15"},
    },
    {
        "id": "reward-double-coins",
        "type": "coin_boost",
        "title": "Double Coins Weekend",
        "description": "Earn twice the coins from missions this weekend",
        "coins_cost": 150,
        "xp_reward": 10,
        "boost_multiplier": 2.0,
    },
]

LEADERBOARD_SEED_DATA: list[dict] = [
    {
        "id": "u-top1", "username": "amina", "level": 12, "lifescore": 90, "xp": 1200, "coins": 0,
        "current_streak": 12, "longest_streak": 21,
    },
    {
        "id": "u-top2", "username": "yusuf", "level": 11, "lifescore": 87, "xp": 1150, "coins": 0,
        "current_streak": 9, "longest_streak": 9,
    },
    {
        "id": "u-top3", "username": "layla", "level": 6, "lifescore": 62, "xp": 560, "coins": 0,
        "current_streak": 4, "longest_streak": 10,
    },
]


def mission_rows() -> list[Row]:
    now = utcnow()
    return [{**m, "is_active": True, "created_at": now} for m in MISSION_SEED_DATA]


def reward_rows() -> list[Row]:
    now = utcnow()
    rows = []
    for r in REWARD_SEED_DATA:
        row = {
            "badge_rarity": None,
            "partner_offer": None,
            "boost_multiplier": None,
            "is_active": True,
            "created_at": now,
            **r,
        }
        rows.append(row)
    return rows


def leaderboard_rows() -> list[Row]:
    now = utcnow()
    return [{**u, "created_at": now, "updated_at": now} for u in LEADERBOARD_SEED_DATA]


async def seed_fallback(store: StorageBackend) -> None:
    """Load the full static catalog into the fallback store."""
    await store.insert("missions", mission_rows())
    await store.insert("rewards", reward_rows())
    await store.insert("users", leaderboard_rows())


async def seed_catalog(store: StorageBackend) -> int:
    """Seed missions and rewards into an empty durable store. Idempotent."""
    inserted = 0
    for collection, rows in (("missions", mission_rows()), ("rewards", reward_rows())):
        try:
            if await store.select(collection, limit=1):
                continue
            await store.insert(collection, rows)
            inserted += len(rows)
        except StorageError:
            logger.warning("Catalog seeding failed for %s", collection)
    if inserted:
        logger.info("Seeded %d catalog rows", inserted)
    return inserted
