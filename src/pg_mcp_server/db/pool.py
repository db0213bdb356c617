"""Database connection pool management.

This module wraps an asyncpg pool with the lending contract the rest of the
server relies on: a bounded number of leased connections, an acquisition
timeout that fails explicitly instead of waiting forever, and a scoped
``lease()`` that returns the connection on every exit path.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import asyncpg
from asyncpg import Connection, Pool

from pg_mcp_server.config.settings import DatabaseConfig
from pg_mcp_server.models.errors import (
    DatabaseConnectionError,
    PoolExhaustedError,
    PoolTimeoutError,
)
from pg_mcp_server.observability.metrics import MetricsCollector, metrics

logger = logging.getLogger(__name__)


async def create_pool(
    config: DatabaseConfig,
    init: Callable[[Connection], Awaitable[None]] | None = None,
) -> Pool:
    """Create an asyncpg connection pool.

    With ``min_pool_size == 0`` no connection is opened here; sockets are
    opened lazily by the first acquisitions, so the server can start while the
    database is unreachable.

    Args:
        config: Database configuration containing connection parameters
            and pool settings.
        init: Optional coroutine run on every newly opened connection.

    Returns:
        Pool: An asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If eager connections cannot be opened.
        OSError: If the database host cannot be reached for eager connections.

    Example:
        >>> config = DatabaseConfig(host="localhost", database="mydb")
        >>> pool = await create_pool(config)
        >>> async with pool.acquire() as conn:
        ...     result = await conn.fetch("SELECT 1")
    """
    pool = await asyncpg.create_pool(
        host=config.host,
        port=config.port,
        database=config.database,
        user=config.user,
        password=config.password.get_secret_value() or None,
        ssl=config.ssl_context(),
        min_size=config.min_pool_size,
        max_size=config.max_pool_size,
        max_inactive_connection_lifetime=config.idle_timeout,
        timeout=config.acquire_timeout,
        command_timeout=config.command_timeout,
        init=init,
    )

    if pool is None:
        raise RuntimeError(f"Failed to create connection pool for {config.database}")

    return pool


class ConnectionPool:
    """Bounded pool of PostgreSQL connections lent out one operation at a time.

    Concurrency is cooperative: the lease counters are only touched between
    awaits, so no lock is needed.

    Attributes:
        config: Database configuration used to open the pool.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        metrics_collector: MetricsCollector | None = None,
    ) -> None:
        """Initialize an unopened pool.

        Args:
            config: Database configuration (size, timeouts, TLS mode).
            metrics_collector: Metrics sink; defaults to the process singleton.
        """
        self.config = config
        self.metrics = metrics_collector or metrics
        self._pool: Pool | None = None
        self._leased = 0
        self._peak_leased = 0

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    @property
    def leased(self) -> int:
        """Number of connections currently lent out."""
        return self._leased

    @property
    def peak_leased(self) -> int:
        """Highest number of connections lent out at the same time."""
        return self._peak_leased

    async def open(self) -> None:
        """Create the underlying asyncpg pool. Calling it twice is a no-op."""
        if self._pool is not None:
            return
        logger.info(
            "Opening connection pool",
            extra={"dsn": self.config.safe_dsn, "max_size": self.config.max_pool_size},
        )
        self._pool = await create_pool(self.config, init=self._init_connection)

    async def close(self) -> None:
        """Close the pool gracefully, forcing termination after ``close_timeout``."""
        pool, self._pool = self._pool, None
        if pool is None:
            return

        try:
            await asyncio.wait_for(pool.close(), timeout=self.config.close_timeout)
            logger.info("Connection pool closed gracefully")
        except TimeoutError:
            logger.warning("Graceful pool close timed out, forcing termination")
            pool.terminate()
        except Exception as e:
            logger.error(f"Error closing connection pool: {e!s}")
            pool.terminate()

    async def acquire(self) -> Connection:
        """Lease a connection, waiting at most ``acquire_timeout`` seconds.

        Returns:
            Connection: A live connection owned by the caller until released.

        Raises:
            PoolExhaustedError: Every connection stayed leased for the whole timeout.
            PoolTimeoutError: A slot was free but connecting did not finish in time.
            DatabaseConnectionError: The pool is closed or the database refused
                the connection.
        """
        pool = self._pool
        if pool is None:
            raise DatabaseConnectionError("Connection pool is not open")

        timeout = self.config.acquire_timeout
        try:
            connection = await pool.acquire(timeout=timeout)
        except TimeoutError as e:
            details = {
                "timeout_seconds": timeout,
                "leased": self._leased,
                "max_size": self.config.max_pool_size,
            }
            if self._leased >= self.config.max_pool_size:
                self.metrics.increment_pool_acquire_failure("exhausted")
                raise PoolExhaustedError(
                    message=(
                        f"All {self.config.max_pool_size} connections are in use; "
                        f"none was released within {timeout} seconds"
                    ),
                    details=details,
                ) from e
            self.metrics.increment_pool_acquire_failure("timeout")
            raise PoolTimeoutError(
                message=f"Timed out after {timeout} seconds waiting for a database connection",
                details=details,
            ) from e
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.metrics.increment_pool_acquire_failure("connect_error")
            raise DatabaseConnectionError(
                message=f"Could not connect to the database: {e!s}",
                details={"error_type": type(e).__name__, "dsn": self.config.safe_dsn},
            ) from e

        self._leased += 1
        self._peak_leased = max(self._peak_leased, self._leased)
        self.metrics.set_db_connections_leased(self._leased)
        return connection

    async def release(self, connection: Connection) -> None:
        """Return a leased connection to the pool."""
        try:
            if self._pool is not None:
                await self._pool.release(connection)
        finally:
            self._leased -= 1
            self.metrics.set_db_connections_leased(self._leased)

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[Connection]:
        """Scoped acquisition: the connection is released however the block exits.

        Example:
            >>> async with pool.lease() as conn:
            ...     await conn.fetch("SELECT 1")
        """
        connection = await self.acquire()
        try:
            yield connection
        finally:
            await self.release(connection)

    def stats(self) -> dict[str, Any]:
        """Snapshot of pool usage.

        Returns:
            dict: ``size`` (open sockets), ``idle``, ``leased``, ``peak_leased``
            and ``max_size``.
        """
        size = idle = 0
        if self._pool is not None:
            size = self._pool.get_size()
            idle = self._pool.get_idle_size()
        return {
            "size": size,
            "idle": idle,
            "leased": self._leased,
            "peak_leased": self._peak_leased,
            "max_size": self.config.max_pool_size,
        }

    async def _init_connection(self, connection: Connection) -> None:
        connection.add_termination_listener(self._on_connection_terminated)

    def _on_connection_terminated(self, connection: Connection) -> None:
        # Fires for idle expiry and for server-side drops alike; asyncpg
        # discards the closed connection and reconnects on the next acquire.
        if self._pool is None:
            return
        logger.info("Pooled database connection closed; a replacement opens on demand")
