"""Leaderboards over user balances."""

from __future__ import annotations

from lifequest.storage.backend import OrderBy, Row
from lifequest.storage.resilient import ResilientStorage

_PUBLIC_FIELDS = ("id", "username", "level", "lifescore", "xp")
BOARDS = {"lifescore": "lifescore", "xp": "xp"}


class Leaderboard:
    def __init__(self, storage: ResilientStorage) -> None:
        self._storage = storage

    async def top(self, board: str, limit: int = 10) -> list[dict]:
        """Top users by ``board`` column, rank 1 first."""
        column = BOARDS[board]
        rows = await self._storage.select(
            "users",
            order_by=OrderBy(column, descending=True),
            limit=limit,
            expect_rows=True,
        )
        return [_entry(rank, row) for rank, row in enumerate(rows, start=1)]

    async def top_by_lifescore(self, limit: int = 10) -> list[dict]:
        return await self.top("lifescore", limit)

    async def top_by_xp(self, limit: int = 10) -> list[dict]:
        return await self.top("xp", limit)


def _entry(rank: int, row: Row) -> dict:
    return {"rank": rank, **{k: row.get(k) for k in _PUBLIC_FIELDS}}
