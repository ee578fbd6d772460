"""
PostgreSQL connection pool for the Products service.
"""

import time
from typing import Any, List, Optional

import asyncpg

from shared.config import BaseConfig
from shared.errors import ServiceError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


class Database:
    """Owns the asyncpg pool; constructed at startup and injected where needed."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        max_size: int = 20,
        idle_timeout: float = 30.0,
        connect_timeout: float = 2.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.max_size = max_size
        self.idle_timeout = idle_timeout
        self.connect_timeout = connect_timeout
        self.metrics = metrics
        self.logger = get_logger("products.database")
        self.pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_config(cls, config: BaseConfig, **kwargs) -> "Database":
        return cls(
            host=config.db_host,
            port=config.db_port,
            user=config.db_user,
            password=config.db_password,
            database=config.db_name,
            max_size=config.db_pool_max_size,
            idle_timeout=config.db_pool_idle_timeout_seconds,
            connect_timeout=config.db_connect_timeout_seconds,
            **kwargs,
        )

    async def connect(self) -> None:
        """Create the pool and check a connection can be established."""
        if self.pool is not None:
            return

        try:
            self.pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                database=self.database,
                min_size=1,
                max_size=self.max_size,
                max_inactive_connection_lifetime=self.idle_timeout,
                timeout=self.connect_timeout,
            )
        except Exception as e:
            self.logger.error("Error connecting to PostgreSQL", host=self.host, database=self.database, error=str(e))
            raise ServiceError("Failed to connect to database") from e

        self.logger.info("Connected to PostgreSQL database", host=self.host, database=self.database)

    async def close(self) -> None:
        """Drain and close the pool."""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            self.logger.info("Database pool closed")

    async def fetch(self, query: str, *args: Any, operation: str = "select") -> List[asyncpg.Record]:
        return await self._run("fetch", query, args, operation)

    async def fetchrow(self, query: str, *args: Any, operation: str = "select") -> Optional[asyncpg.Record]:
        return await self._run("fetchrow", query, args, operation)

    async def _run(self, method: str, query: str, args: tuple, operation: str):
        if self.pool is None:
            raise RuntimeError("Database pool is not initialised")

        start = time.time()
        try:
            async with self.pool.acquire() as conn:
                result = await getattr(conn, method)(query, *args)
        except Exception as e:
            self.logger.error("Database query error", operation=operation, error=str(e))
            self._record(operation, "error")
            raise

        duration = time.time() - start
        rows = len(result) if isinstance(result, list) else int(result is not None)
        self.logger.debug("Executed query", operation=operation, duration_ms=round(duration * 1000, 2), rows=rows)
        self._record(operation, "success", duration)
        return result

    def _record(self, operation: str, status: str, duration: Optional[float] = None) -> None:
        if self.metrics is None:
            return
        self.metrics.increment_counter("db_queries_total", operation=operation, status=status)
        if duration is not None:
            self.metrics.observe_histogram("db_query_duration_seconds", duration, operation=operation)
