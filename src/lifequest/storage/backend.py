"""Storage backend contract shared by the durable and in-memory stores.

Collections are addressed by table name and rows are plain dicts. Filters
are equality maps; in ``update`` they double as the compare half of a
compare-and-set, so a status guard in the filters makes the write
conditional.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

Row = dict[str, Any]


class Operation(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class OrderBy:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class Adjustment:
    """Result of an atomic numeric adjustment."""

    old: int
    new: int
    applied: bool = True


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def clamp(value: int, floor: int | None, ceiling: int | None) -> int:
    if floor is not None and value < floor:
        return floor
    if ceiling is not None and value > ceiling:
        return ceiling
    return value


def in_bounds(value: int, floor: int | None, ceiling: int | None) -> bool:
    return (floor is None or value >= floor) and (ceiling is None or value <= ceiling)


class StorageBackend(ABC):
    """Uniform query interface over one store."""

    name: str = "backend"

    @abstractmethod
    async def is_available(self) -> bool:
        """Report whether the store answers. Never raises."""

    @abstractmethod
    async def select(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Return matching rows."""

    @abstractmethod
    async def insert(self, collection: str, data: Row | list[Row]) -> list[Row]:
        """Insert one or many rows in a single unit of work."""

    @abstractmethod
    async def insert_batch(self, batch: list[tuple[str, list[Row]]]) -> None:
        """Insert rows into several collections in a single unit of work.

        Either every row lands or none does.
        """

    @abstractmethod
    async def update(self, collection: str, filters: dict[str, Any], data: Row) -> list[Row]:
        """Update rows matching ``filters``; return them as updated."""

    @abstractmethod
    async def adjust(
        self,
        collection: str,
        filters: dict[str, Any],
        column: str,
        delta: int,
        floor: int | None = None,
        ceiling: int | None = None,
        clamp_result: bool = True,
    ) -> Adjustment:
        """Atomically add ``delta`` to ``column`` of the single matching row.

        With ``clamp_result`` the result is clamped into [floor, ceiling].
        Without it an out-of-range result is not written and the returned
        ``Adjustment.applied`` is False.
        """

    async def query(self, collection: str, operation: Operation | str, **options: Any) -> list[Row]:
        """Dispatch a generic ``(collection, operation, options)`` request."""
        op = Operation(operation)
        if op is Operation.SELECT:
            return await self.select(
                collection,
                filters=options.get("filters"),
                order_by=options.get("order_by"),
                limit=options.get("limit"),
            )
        if op is Operation.INSERT:
            return await self.insert(collection, options["data"])
        return await self.update(collection, options.get("filters") or {}, options["data"])
