"""Async database helpers backed by asyncpg connection pooling."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import asyncpg

from .settings import get_settings

_POOL: asyncpg.Pool | None = None
_POOL_LOCK = asyncio.Lock()


async def _init_connection(connection: asyncpg.Connection) -> None:
    # weekly_cycles payloads are jsonb; decode them to Python objects on read.
    for type_name in ("json", "jsonb"):
        await connection.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def get_async_pool() -> asyncpg.Pool:
    """Return a shared asyncpg connection pool, creating it on demand."""

    global _POOL
    if _POOL is None:
        async with _POOL_LOCK:
            if _POOL is None:
                settings = get_settings()
                _POOL = await asyncpg.create_pool(
                    dsn=settings.database_url,
                    min_size=1,
                    max_size=10,
                    command_timeout=60,
                    statement_cache_size=0,
                    max_inactive_connection_lifetime=300,
                    init=_init_connection,
                )
    return _POOL


async def close_async_pool() -> None:
    global _POOL
    if _POOL is not None:
        await _POOL.close()
        _POOL = None


async def fetch_one(query: str, *args: Any) -> dict[str, Any] | None:
    """Run a parametrised query and return at most a single row as a dict."""

    pool = await get_async_pool()
    async with pool.acquire() as connection:
        record = await connection.fetchrow(query, *args)
    return dict(record) if record is not None else None


async def fetch_all(query: str, *args: Any) -> list[dict[str, Any]]:
    """Run a parametrised query and return all resulting rows as dicts."""

    pool = await get_async_pool()
    async with pool.acquire() as connection:
        records = await connection.fetch(query, *args)
    return [dict(record) for record in records]


async def execute(query: str, *args: Any) -> str:
    """Execute a data-modifying statement and return the asyncpg status."""

    pool = await get_async_pool()
    async with pool.acquire() as connection:
        return await connection.execute(query, *args)


def affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg command tag such as ``UPDATE 1``."""

    try:
        return int((status or "").rsplit(" ", 1)[-1])
    except ValueError:
        return 0


__all__ = [
    "affected_rows",
    "close_async_pool",
    "execute",
    "fetch_all",
    "fetch_one",
    "get_async_pool",
]
