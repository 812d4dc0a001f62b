"""Application database adapter using asyncpg."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from importlib import resources
from typing import Any

import asyncpg
import structlog

from gatekeep.core.exceptions import StoreUnavailableError

logger = structlog.get_logger()


def dump_json(value: dict[str, Any] | None) -> str | None:
    """Encode a JSONB parameter."""
    return json.dumps(value, default=str) if value is not None else None


def load_json(value: Any) -> dict[str, Any] | None:
    """Decode a JSONB column, which asyncpg returns as text by default."""
    if value is None or isinstance(value, dict):
        return value
    loaded: dict[str, Any] = json.loads(value)
    return loaded


class AppDatabase:
    """Application database holding accounts, revocations and audit logs."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        """Initialize the app database adapter."""
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.pool: asyncpg.Pool[asyncpg.Connection[asyncpg.Record]] | None = None

    async def connect(self) -> None:
        """Create connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=60,
            )
        except (OSError, asyncpg.PostgresError) as e:
            raise StoreUnavailableError(f"Could not connect to database: {e}") from e
        logger.info("app_database_connected", dsn=self.dsn.split("@")[-1])

    async def close(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("app_database_disconnected")

    async def apply_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        schema = resources.files("gatekeep.adapters.db").joinpath("schema.sql").read_text()
        await self.execute(schema)
        logger.info("app_database_schema_applied")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection from the pool."""
        if self.pool is None:
            raise StoreUnavailableError("Database pool not initialized")
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (OSError, asyncpg.exceptions.ConnectionDoesNotExistError) as e:
            raise StoreUnavailableError(f"Database connection lost: {e}") from e

    async def fetch_one(self, query: str, *args: Any) -> dict[str, Any] | None:
        """Fetch a single row."""
        async with self.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            if row:
                return dict(row)
            return None

    async def fetch_all(self, query: str, *args: Any) -> list[dict[str, Any]]:
        """Fetch all rows."""
        async with self.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

    async def fetch_value(self, query: str, *args: Any) -> Any:
        """Fetch the first column of the first row."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query and return status."""
        async with self.acquire() as conn:
            result: str = await conn.execute(query, *args)
            return result

    async def execute_many(self, query: str, args: list[tuple[Any, ...]]) -> None:
        """Execute a query once per parameter tuple in a single transaction."""
        async with self.acquire() as conn, conn.transaction():
            await conn.executemany(query, args)

    async def execute_returning(self, query: str, *args: Any) -> dict[str, Any] | None:
        """Execute a query with RETURNING clause."""
        async with self.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            if row:
                return dict(row)
            return None


def affected_rows(status: str) -> int:
    """Parse the row count from a command status such as 'DELETE 3'."""
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0
