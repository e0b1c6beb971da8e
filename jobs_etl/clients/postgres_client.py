"""PostgreSQL client with connection pooling."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
import structlog

from jobs_etl.config import get_settings

logger = structlog.get_logger()


class PostgresClient:
    """PostgreSQL client with asyncpg connection pool."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Initialize connection pool."""
        if self._pool is not None:
            return

        self._pool = await asyncpg.create_pool(
            host=self.settings.postgres_host,
            port=self.settings.postgres_port,
            database=self.settings.postgres_db,
            user=self.settings.postgres_user,
            password=self.settings.postgres_password,
            min_size=self.settings.postgres_pool_min,
            max_size=self.settings.postgres_pool_max,
            command_timeout=60,
        )
        logger.info("postgres_connected", host=self.settings.postgres_host)

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("postgres_disconnected")

    async def execute(self, query: str, *args) -> str:
        """Execute a query."""
        if not self._pool:
            await self.connect()
        return await self._pool.execute(query, *args)

    async def fetch(self, query: str, *args) -> list[asyncpg.Record]:
        """Fetch multiple rows."""
        if not self._pool:
            await self.connect()
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args) -> asyncpg.Record | None:
        """Fetch a single row."""
        if not self._pool:
            await self.connect()
        return await self._pool.fetchrow(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a pooled connection inside a transaction.

        Usage:
            async with client.transaction() as conn:
                await conn.execute(...)
        """
        if not self._pool:
            await self.connect()
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn
