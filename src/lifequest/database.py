"""Async SQLAlchemy engine for the durable store.

The storage layer talks to the engine directly through SQLAlchemy Core, so
there is no session factory here.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from lifequest.db.base import Base

_engine: AsyncEngine | None = None


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("postgresql"):
        return {
            "pool_size": 20,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "connect_args": {"statement_cache_size": 0},
        }
    # SQLite (local runs and tests) takes no pool sizing
    return {}


async def init_db(url: str, create_schema: bool = False) -> AsyncEngine:
    """Create the engine; with ``create_schema`` also create missing tables."""
    global _engine  # noqa: PLW0603
    _engine = create_async_engine(url, echo=False, **_engine_options(url))
    if create_schema:
        # Importing registers every table on Base.metadata
        import lifequest.db.models  # noqa: F401

        async with _engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    return _engine


async def close_db() -> None:
    global _engine  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def is_initialized() -> bool:
    return _engine is not None
