"""Supabase Postgres connection pool for the tracker database."""

import asyncio

import asyncpg

from src.utils.config import (
    get_store_command_timeout,
    get_store_pool_max_size,
    get_store_pool_min_size,
    get_supabase_db_password,
    get_supabase_db_url,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)


class SupabaseDB:
    """Owns the asyncpg pool used by the webhook service.

    Built once at startup and handed to the store; there is no module-level instance.
    The pool itself is created lazily on first use, so the service starts even while the
    database is unreachable and reports the outage per request.
    """

    def __init__(
        self,
        db_url: str,
        password: str,
        min_size: int = 1,
        max_size: int = 5,
        command_timeout: float = 10.0,
    ):
        self._db_url = db_url
        self._password = password
        self._min_size = min_size
        self._max_size = max_size
        self._command_timeout = command_timeout
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    @classmethod
    def from_config(cls) -> "SupabaseDB":
        """Build from environment configuration.

        Raises:
            ValueError: If SUPABASE_DB_URL or SUPABASE_DB_PASSWORD is missing
        """
        return cls(
            db_url=get_supabase_db_url(),
            password=get_supabase_db_password(),
            min_size=get_store_pool_min_size(),
            max_size=get_store_pool_max_size(),
            command_timeout=get_store_command_timeout(),
        )

    async def get_pool(self) -> asyncpg.Pool:
        """Get the pool, creating it on first use."""
        async with self._pool_lock:
            if self._pool is None:
                self._pool = await self._create_pool()
        return self._pool

    async def _create_pool(self) -> asyncpg.Pool:
        pool = await asyncpg.create_pool(
            self._db_url,
            password=self._password,
            min_size=self._min_size,
            max_size=self._max_size,
            command_timeout=self._command_timeout,
            timeout=30,
        )
        logger.info("Tracker database pool initialized", max_size=self._max_size)
        return pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Tracker database pool closed")
