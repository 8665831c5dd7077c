# services/db_service.py
from __future__ import annotations

from contextlib import asynccontextmanager
from time import monotonic
from typing import Any, AsyncIterator, List, Optional
from urllib.parse import urlparse

import asyncpg

from harvester.config import Settings, get_settings, require_database_url
from harvester.core.logging import get_logger
from harvester.utils.db_url import normalize_database_url

logger = get_logger()

APPLICATION_NAME = "news-harvester"
DEFAULT_QUERY_TIMEOUT_S = 30.0
SLOW_QUERY_THRESHOLD_MS = 1_000  # 1 second
IDLE_IN_TRANSACTION_TIMEOUT_MS = 60_000


class Database:
    """
    Explicit handle on the persistence surface. Owns one asyncpg pool and is
    passed to whatever needs it; there is no module-level pool.
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        *,
        query_timeout_s: float = DEFAULT_QUERY_TIMEOUT_S,
        acquire_timeout_s: Optional[float] = None,
    ) -> None:
        self._pool = pool
        self.query_timeout_s = query_timeout_s
        self.acquire_timeout_s = acquire_timeout_s

    @classmethod
    async def connect(cls, settings: Optional[Settings] = None) -> "Database":
        cfg = settings or get_settings()
        final_dsn = normalize_database_url(require_database_url(cfg))
        parsed = urlparse(final_dsn)

        logger.info(
            "db_pool_initializing",
            dsn_host=parsed.hostname,
            dsn_port=parsed.port,
            application_name=APPLICATION_NAME,
            max_size=cfg.DB_POOL_MAX_SIZE,
        )
        pool = await asyncpg.create_pool(
            dsn=final_dsn,
            min_size=cfg.DB_POOL_MIN_SIZE,
            max_size=cfg.DB_POOL_MAX_SIZE,
            command_timeout=cfg.STATEMENT_TIMEOUT_MS / 1000,
            timeout=cfg.DB_ACQUIRE_TIMEOUT_S,
            statement_cache_size=0,
            max_inactive_connection_lifetime=cfg.DB_MAX_INACTIVE_CONNECTION_LIFETIME_S,
            server_settings={
                "application_name": APPLICATION_NAME,
                "statement_timeout": str(cfg.STATEMENT_TIMEOUT_MS),
                "lock_timeout": str(cfg.LOCK_TIMEOUT_MS),
                "idle_in_transaction_session_timeout": str(IDLE_IN_TRANSACTION_TIMEOUT_MS),
            },
        )
        return cls(
            pool,
            query_timeout_s=cfg.STATEMENT_TIMEOUT_MS / 1000,
            acquire_timeout_s=cfg.DB_ACQUIRE_TIMEOUT_S,
        )

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        async with self._pool.acquire(timeout=self.acquire_timeout_s) as conn:
            yield conn

    async def _execute_with_timing(
        self,
        conn: asyncpg.Connection,
        method: str,
        query: str,
        *args: Any,
        timeout: Optional[float] = None,
    ) -> Any:
        start_ms = monotonic() * 1000
        try:
            func = getattr(conn, method)
            effective_timeout = timeout if timeout is not None else self.query_timeout_s
            return await func(query, *args, timeout=effective_timeout)
        finally:
            duration_ms = (monotonic() * 1000) - start_ms
            if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
                logger.warning(
                    "db_slow_query",
                    duration_ms=round(duration_ms, 2),
                    method=method,
                    arg_count=len(args),
                    query_snippet=query.strip().split("\n")[0][:200],
                )

    async def fetch(self, query: str, *args: Any, timeout: Optional[float] = None) -> List[asyncpg.Record]:
        async with self.connection() as conn:
            return await self._execute_with_timing(conn, "fetch", query, *args, timeout=timeout)

    async def fetchrow(
        self,
        query: str,
        *args: Any,
        timeout: Optional[float] = None,
    ) -> Optional[asyncpg.Record]:
        async with self.connection() as conn:
            return await self._execute_with_timing(conn, "fetchrow", query, *args, timeout=timeout)

    async def fetchval(self, query: str, *args: Any, timeout: Optional[float] = None) -> Any:
        async with self.connection() as conn:
            return await self._execute_with_timing(conn, "fetchval", query, *args, timeout=timeout)

    @asynccontextmanager
    async def transaction(
        self,
        *,
        isolation: Optional[str] = None,
        readonly: bool = False,
    ) -> AsyncIterator[asyncpg.Connection]:
        async with self.connection() as conn:
            tx = conn.transaction(isolation=isolation, readonly=readonly)
            await tx.start()
            try:
                yield conn
            except Exception:
                await tx.rollback()
                raise
            else:
                await tx.commit()
