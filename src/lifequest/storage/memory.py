"""In-memory fallback store.

Rows live in process-local lists partitioned by ``user_id`` (rows without
one share a global partition), so insertion order is preserved per user.
No method awaits between reading and writing a row, which makes every
operation atomic with respect to other coroutines on the same loop.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Any

import structlog

from lifequest.errors import ConflictError, StorageError
from lifequest.storage.backend import (
    Adjustment,
    OrderBy,
    Row,
    StorageBackend,
    clamp,
    in_bounds,
)

logger = structlog.get_logger()

_GLOBAL = ""

DEFAULT_UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "mission_steps": [("user_mission_id", "step_number")],
}


def _matches(row: Row, filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(row.get(key) == value for key, value in filters.items())


def _sort_key(column: str):
    def key(row: Row) -> tuple[bool, Any]:
        value = row.get(column)
        return (value is None, value)

    return key


class InMemoryBackend(StorageBackend):
    """Process-local mirror of the durable tables."""

    name = "memory"

    def __init__(self, unique_keys: dict[str, list[tuple[str, ...]]] | None = None) -> None:
        self._tables: dict[str, dict[str, list[Row]]] = defaultdict(dict)
        self._unique_keys = DEFAULT_UNIQUE_KEYS if unique_keys is None else unique_keys

    async def is_available(self) -> bool:
        return True

    def _partitions(self, collection: str, filters: dict[str, Any] | None) -> list[list[Row]]:
        table = self._tables[collection]
        if filters and "user_id" in filters:
            partition = table.get(str(filters["user_id"]))
            return [partition] if partition is not None else []
        return list(table.values())

    def _find(self, collection: str, filters: dict[str, Any] | None) -> list[Row]:
        return [
            row
            for partition in self._partitions(collection, filters)
            for row in partition
            if _matches(row, filters)
        ]

    def _check_unique(self, collection: str, row: Row) -> None:
        existing = self._find(collection, None)
        if "id" in row and any(r.get("id") == row["id"] for r in existing):
            raise ConflictError
        for columns in self._unique_keys.get(collection, []):
            values = tuple(row.get(c) for c in columns)
            if any(tuple(r.get(c) for c in columns) == values for r in existing):
                raise ConflictError

    async def select(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        rows = self._find(collection, filters)
        if order_by is not None:
            rows = sorted(rows, key=_sort_key(order_by.column), reverse=order_by.descending)
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]

    def _stage(self, collection: str, data: Row | list[Row]) -> list[Row]:
        rows = [copy.deepcopy(r) for r in (data if isinstance(data, list) else [data])]
        staged: list[Row] = []
        for row in rows:
            self._check_unique(collection, row)
            for other in staged:
                if "id" in row and other.get("id") == row["id"]:
                    raise ConflictError
                for columns in self._unique_keys.get(collection, []):
                    if all(other.get(c) == row.get(c) for c in columns):
                        raise ConflictError
            staged.append(row)
        return staged

    def _commit(self, collection: str, staged: list[Row]) -> None:
        table = self._tables[collection]
        for row in staged:
            table.setdefault(str(row.get("user_id", _GLOBAL)), []).append(row)

    async def insert(self, collection: str, data: Row | list[Row]) -> list[Row]:
        # Validate the whole batch before writing any of it
        staged = self._stage(collection, data)
        self._commit(collection, staged)
        return [copy.deepcopy(r) for r in staged]

    async def insert_batch(self, batch: list[tuple[str, list[Row]]]) -> None:
        staged = [(collection, self._stage(collection, rows)) for collection, rows in batch]
        for collection, rows in staged:
            self._commit(collection, rows)

    async def update(self, collection: str, filters: dict[str, Any], data: Row) -> list[Row]:
        rows = self._find(collection, filters)
        for row in rows:
            row.update(copy.deepcopy(data))
        return [copy.deepcopy(r) for r in rows]

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
        rows = self._find(collection, filters)
        if len(rows) != 1:
            logger.warning("memory_adjust_row_mismatch", collection=collection, matched=len(rows))
            raise StorageError
        row = rows[0]
        old = int(row.get(column) or 0)
        target = old + delta
        if clamp_result:
            new = clamp(target, floor, ceiling)
        elif not in_bounds(target, floor, ceiling):
            return Adjustment(old=old, new=old, applied=False)
        else:
            new = target
        row[column] = new
        return Adjustment(old=old, new=new)

    def clear(self) -> None:
        self._tables.clear()
