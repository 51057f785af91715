"""Resilience wrapper: the one place the fallback policy lives.

Policy:

* no primary configured: every call is served by the fallback store;
* reads go to the primary first, bounded by ``timeout``; a ``StorageError``
  or a timeout falls back, and so does an empty result when the caller
  passes ``expect_rows=True`` (catalog listings). Reads of state that only
  ever lands in the primary pass ``fallback_on_error=False``, so an
  unreachable store surfaces as ``StorageError`` instead of "no rows";
* writes go to the primary only and a failure propagates, unless the caller
  marks the write ``best_effort=True``, in which case it lands in the
  fallback store instead.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from lifequest.errors import StorageError
from lifequest.storage.backend import Adjustment, Operation, OrderBy, Row, StorageBackend
from lifequest.storage.memory import InMemoryBackend

logger = structlog.get_logger()

T = TypeVar("T")


class ResilientStorage:
    """Primary-then-fallback access to the logical tables."""

    def __init__(
        self,
        primary: StorageBackend | None,
        fallback: InMemoryBackend,
        timeout_seconds: float = 2.0,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.timeout_seconds = timeout_seconds

    @property
    def mode(self) -> str:
        return "fallback" if self.primary is None else "durable"

    async def _primary_call(self, primary: StorageBackend, call: Callable[[StorageBackend], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(call(primary), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("storage_timeout", timeout=self.timeout_seconds)
            raise StorageError from exc

    async def select(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
        expect_rows: bool = False,
        fallback_on_error: bool = True,
    ) -> list[Row]:
        def call(backend: StorageBackend) -> Awaitable[list[Row]]:
            return backend.select(collection, filters=filters, order_by=order_by, limit=limit)

        primary = self.primary
        if primary is None:
            return await call(self.fallback)
        try:
            rows = await self._primary_call(primary, call)
        except StorageError:
            if not fallback_on_error:
                logger.warning("storage_unavailable", collection=collection, operation="select")
                raise
            logger.warning("storage_fallback", collection=collection, operation="select", reason="error")
            return await call(self.fallback)
        if expect_rows and not rows:
            logger.info("storage_fallback", collection=collection, operation="select", reason="empty")
            return await call(self.fallback)
        return rows

    async def _write(
        self,
        collection: str,
        operation: str,
        call: Callable[[StorageBackend], Awaitable[T]],
        best_effort: bool,
    ) -> T:
        primary = self.primary
        if primary is None:
            return await call(self.fallback)
        try:
            return await self._primary_call(primary, call)
        except StorageError:
            if not best_effort:
                raise
            logger.warning("storage_fallback", collection=collection, operation=operation, reason="error")
            return await call(self.fallback)

    async def insert(self, collection: str, data: Row | list[Row], best_effort: bool = False) -> list[Row]:
        return await self._write(
            collection, "insert", lambda b: b.insert(collection, data), best_effort
        )

    async def insert_batch(self, batch: list[tuple[str, list[Row]]]) -> None:
        """Insert into several collections atomically. Never falls back."""
        collections = ",".join(collection for collection, _ in batch)
        await self._write(collections, "insert_batch", lambda b: b.insert_batch(batch), False)

    async def update(
        self,
        collection: str,
        filters: dict[str, Any],
        data: Row,
        best_effort: bool = False,
    ) -> list[Row]:
        return await self._write(
            collection, "update", lambda b: b.update(collection, filters, data), best_effort
        )

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
        return await self._write(
            collection,
            "adjust",
            lambda b: b.adjust(collection, filters, column, delta, floor, ceiling, clamp_result),
            False,
        )

    async def query(self, collection: str, operation: Operation | str, **options: Any) -> list[Row]:
        """Generic ``(collection, operation, options)`` entry point."""
        op = Operation(operation)
        if op is Operation.SELECT:
            return await self.select(
                collection,
                filters=options.get("filters"),
                order_by=options.get("order_by"),
                limit=options.get("limit"),
                expect_rows=options.get("expect_rows", False),
                fallback_on_error=options.get("fallback_on_error", True),
            )
        if op is Operation.INSERT:
            return await self.insert(collection, options["data"], best_effort=options.get("best_effort", False))
        return await self.update(
            collection,
            options.get("filters") or {},
            options["data"],
            best_effort=options.get("best_effort", False),
        )

    async def health(self) -> dict[str, str]:
        if self.primary is None:
            return {"storage": "fallback"}
        ok = await self.primary.is_available()
        return {"storage": "ok" if ok else "degraded"}
