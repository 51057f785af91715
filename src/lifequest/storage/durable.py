"""Durable backend over SQLAlchemy async Core.

Every driver, transport or schema failure leaves this module as
``StorageError``; unique-constraint violations leave as ``ConflictError``.
Nothing here retries except the bounded compare-and-swap loop in
``adjust``. Callers own the fallback policy.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import Table, and_, insert, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

import lifequest.db.models  # noqa: F401  (registers tables on Base.metadata)
from lifequest.db.base import Base
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


class DurableBackend(StorageBackend):
    """Relational store reached through an async engine."""

    name = "durable"

    def __init__(self, engine: AsyncEngine, cas_attempts: int = 5) -> None:
        self._engine = engine
        self._cas_attempts = cas_attempts

    def _table(self, collection: str) -> Table:
        try:
            return Base.metadata.tables[collection]
        except KeyError:
            logger.error("durable_unknown_collection", collection=collection)
            raise StorageError from None

    def _where(self, table: Table, filters: dict[str, Any] | None) -> Any:
        if not filters:
            return None
        try:
            return and_(*(table.c[key] == value for key, value in filters.items()))
        except KeyError as exc:
            logger.error("durable_unknown_column", table=table.name, column=str(exc))
            raise StorageError from exc

    def _wrap(self, exc: Exception, collection: str, operation: str) -> Exception:
        if isinstance(exc, IntegrityError):
            logger.info("durable_conflict", collection=collection, operation=operation)
            return ConflictError()
        logger.error(
            "durable_query_failed",
            collection=collection,
            operation=operation,
            error=str(exc),
        )
        return StorageError()

    async def is_available(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:  # noqa: BLE001
            logger.warning("durable_unavailable", exc_info=True)
            return False
        return True

    async def select(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        table = self._table(collection)
        stmt = select(table)
        where = self._where(table, filters)
        if where is not None:
            stmt = stmt.where(where)
        if order_by is not None:
            col = table.c[order_by.column]
            stmt = stmt.order_by(col.desc() if order_by.descending else col.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                return [dict(row._mapping) for row in result]
        except (SQLAlchemyError, OSError) as exc:
            raise self._wrap(exc, collection, "select") from exc

    async def insert(self, collection: str, data: Row | list[Row]) -> list[Row]:
        table = self._table(collection)
        rows = data if isinstance(data, list) else [data]
        if not rows:
            return []
        try:
            async with self._engine.begin() as conn:
                await conn.execute(insert(table), rows)
        except (SQLAlchemyError, OSError) as exc:
            raise self._wrap(exc, collection, "insert") from exc
        return [dict(r) for r in rows]

    async def insert_batch(self, batch: list[tuple[str, list[Row]]]) -> None:
        statements = [(collection, self._table(collection), rows) for collection, rows in batch if rows]
        current = ""
        try:
            async with self._engine.begin() as conn:
                for current, table, rows in statements:
                    await conn.execute(insert(table), rows)
        except (SQLAlchemyError, OSError) as exc:
            raise self._wrap(exc, current, "insert_batch") from exc

    async def update(self, collection: str, filters: dict[str, Any], data: Row) -> list[Row]:
        table = self._table(collection)
        stmt = update(table).values(**data).returning(*table.c)
        where = self._where(table, filters)
        if where is not None:
            stmt = stmt.where(where)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                return [dict(row._mapping) for row in result]
        except (SQLAlchemyError, OSError) as exc:
            raise self._wrap(exc, collection, "update") from exc

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
        table = self._table(collection)
        where = self._where(table, filters)
        col = table.c[column]
        for attempt in range(1, self._cas_attempts + 1):
            try:
                async with self._engine.begin() as conn:
                    current = (await conn.execute(select(col).where(where))).first()
                    if current is None:
                        logger.warning("durable_adjust_missing_row", collection=collection, filters=filters)
                        raise StorageError
                    old = int(current[0] or 0)
                    target = old + delta
                    if clamp_result:
                        new = clamp(target, floor, ceiling)
                    elif not in_bounds(target, floor, ceiling):
                        return Adjustment(old=old, new=old, applied=False)
                    else:
                        new = target
                    result = await conn.execute(
                        update(table).where(where, col == old).values({column: new})
                    )
                    if result.rowcount == 1:
                        return Adjustment(old=old, new=new)
            except (SQLAlchemyError, OSError) as exc:
                raise self._wrap(exc, collection, "adjust") from exc
            logger.info("durable_cas_retry", collection=collection, column=column, attempt=attempt)
        logger.error("durable_cas_exhausted", collection=collection, column=column)
        raise StorageError
