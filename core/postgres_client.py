"""
PostgreSQL Client

Async PostgreSQL client over an asyncpg connection pool.
Provides the query/query_row/execute interface used by service repositories,
plus explicit transactions for multi-statement units of work.

Usage:
    from core.postgres_client import AsyncPostgresClient

    db = AsyncPostgresClient(host="localhost", port=5432, database="postgres")

    async with db:
        rows = await db.query("SELECT * FROM t WHERE id = $1", [row_id])

    async with db.transaction() as conn:
        row = await conn.fetchrow("SELECT ... FOR UPDATE", key)
        await conn.execute("UPDATE ...", value)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

logger = logging.getLogger(__name__)


class AsyncPostgresClient:
    """asyncpg pool wrapper with lazy connection"""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "postgres",
        username: str = "postgres",
        password: str = "",
        user_id: Optional[str] = None,
        min_size: int = 1,
        max_size: int = 10,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.username = username
        self.password = password
        self.user_id = user_id
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> asyncpg.Pool:
        """Create the connection pool on first use"""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self.password,
                min_size=self.min_size,
                max_size=self.max_size,
            )
            logger.info(
                f"PostgreSQL pool created for {self.user_id or 'client'}: "
                f"{self.host}:{self.port}/{self.database}"
            )
        return self._pool

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        # Pool stays open for reuse; close() releases it
        return False

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return all rows"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            rows = await conn.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return a single row"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(sql, *(params or []))
        return dict(row) if row else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        """Execute a statement and return the affected row count"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            status = await conn.execute(sql, *(params or []))
        return _affected_rows(status)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Yield a connection inside a transaction; commit on success, rollback on error"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> Optional[Dict[str, Any]]:
        """Check database health"""
        try:
            pool = await self.connect()
            async with pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
            return {"healthy": True, "version": version}
        except Exception as e:
            logger.warning(f"PostgreSQL health check failed: {e}")
            return {"healthy": False, "error": str(e)}

    async def close(self):
        """Close the connection pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")


def _affected_rows(status: str) -> int:
    """Parse asyncpg command status, e.g. 'UPDATE 3' -> 3"""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


__all__ = ["AsyncPostgresClient"]
