"""
PostgreSQL access to the ``mentor`` table.
"""

import asyncio
from typing import Any, Dict, Optional

import asyncpg

from shared.errors import ExternalServiceError, ServiceError
from shared.logging import get_logger


class MentorRepository:
    """Looks up mentor records by email or external identifier."""

    def __init__(self, dsn: str, *, command_timeout: float = 10.0):
        self.dsn = dsn
        self.command_timeout = command_timeout
        self.logger = get_logger("mentorly.mentors.repository")
        self.pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()

    async def _get_pool(self) -> asyncpg.Pool:
        if self.pool is not None:
            return self.pool

        async with self._lock:
            if self.pool is None:
                try:
                    self.pool = await asyncpg.create_pool(
                        self.dsn,
                        min_size=1,
                        max_size=10,
                        command_timeout=self.command_timeout,
                    )
                except (OSError, asyncpg.PostgresError, asyncio.TimeoutError) as e:
                    self.logger.error("Failed to connect to PostgreSQL", error=str(e))
                    raise ExternalServiceError("postgres", "Database connection failed") from e
                self.logger.info("PostgreSQL pool started")
        return self.pool

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL pool stopped")

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(
            "SELECT * FROM mentor WHERE email = $1 LIMIT 1",
            email,
        )

    async def find_by_uid(self, uid: str) -> Optional[Dict[str, Any]]:
        return await self._fetch_one(
            "SELECT * FROM mentor WHERE uid = $1 OR firebase_uid = $1 LIMIT 1",
            uid,
        )

    async def check_health(self) -> str:
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return "ok"
        except Exception as e:
            self.logger.error("PostgreSQL health check failed", error=str(e))
            return "error"

    async def _fetch_one(self, query: str, *args: Any) -> Optional[Dict[str, Any]]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            self.logger.error("Mentor query failed", error=str(e))
            raise ServiceError("Query failed", details={"error_type": type(e).__name__}) from e
        return dict(row) if row is not None else None
