"""Supabase Postgres access with RLS context.

Every connection handed out by ``get_connection`` runs inside a transaction
where ``request.jwt.claims`` and ``role`` are set with ``set_config(..., true)``
(the function form of ``SET LOCAL``).  Supabase RLS policies built on
``auth.uid()`` therefore see the calling user, exactly as they would for a
request made through PostgREST with the user's access token.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg

from src.config import Settings, get_settings

logger = logging.getLogger("kennel.db")

# Module-level connection pool, initialized once at app startup
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    global _pool
    s = settings or get_settings()
    _pool = await asyncpg.create_pool(
        s.supabase_db_url,
        min_size=s.db_pool_min_size,
        max_size=s.db_pool_max_size,
        command_timeout=s.db_command_timeout,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)", s.db_pool_min_size, s.db_pool_max_size
    )
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized; call init_pool() first")
    return _pool


@asynccontextmanager
async def get_connection(
    user_id: uuid.UUID | None = None,
    role: str = "authenticated",
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection with the Supabase auth context set.

    Usage::

        async with get_connection(user_id=ctx.user_id) as conn:
            rows = await conn.fetch("SELECT * FROM heat_cycles WHERE dog_id = $1", dog_id)

    The settings are transaction-local, so they disappear automatically when
    the connection is returned to the pool.
    """
    pool = get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            if user_id:
                claims = json.dumps({"sub": str(user_id), "role": role})
                await conn.execute(
                    "SELECT set_config('request.jwt.claims', $1, true), "
                    "set_config('role', $2, true)",
                    claims,
                    role,
                )
            yield conn
