"""Pytest configuration and shared fixtures.

This module provides shared fixtures and in-memory fakes standing in for the
asyncpg pool, so that the pool, executor and HTTP layers can be exercised
without a running PostgreSQL.
"""

import asyncio
import os
from collections.abc import AsyncIterator, Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from pg_mcp_server.config.settings import DatabaseConfig, reset_settings
from pg_mcp_server.db.pool import ConnectionPool


@pytest.fixture(autouse=True)
def reset_config() -> None:
    """Reset global settings before each test."""
    reset_settings()


@pytest.fixture(autouse=True)
def disable_metrics_for_tests():
    """Disable metrics for tests to avoid port conflicts."""
    os.environ["OBSERVABILITY_METRICS_ENABLED"] = "false"
    yield
    # Clean up
    if "OBSERVABILITY_METRICS_ENABLED" in os.environ:
        del os.environ["OBSERVABILITY_METRICS_ENABLED"]


def make_column(name: str, type_name: str = "text", oid: int = 25) -> SimpleNamespace:
    """Create an object shaped like an asyncpg prepared statement attribute."""
    return SimpleNamespace(name=name, type=SimpleNamespace(oid=oid, name=type_name))


def make_statement(
    rows: list[dict[str, Any]] | None = None,
    columns: list[SimpleNamespace] | None = None,
    status: str | None = None,
    parameters: list[str] | None = None,
) -> MagicMock:
    """Create a mock asyncpg PreparedStatement.

    Args:
        rows: Rows returned by ``fetch``; dicts convert like asyncpg records.
        columns: Result attributes; derived from the first row when omitted.
        status: Command status tag; ``SELECT <n>`` when omitted.
        parameters: Type names inferred for the ``$n`` placeholders.

    Returns:
        MagicMock that behaves like a prepared statement.
    """
    rows = rows or []
    if columns is None:
        columns = [make_column(name) for name in (rows[0] if rows else {})]
    if status is None:
        status = f"SELECT {len(rows)}"

    statement = MagicMock()
    statement.fetch = AsyncMock(return_value=rows)
    statement.get_attributes = MagicMock(return_value=columns)
    statement.get_statusmsg = MagicMock(return_value=status)
    statement.get_parameters = MagicMock(
        return_value=[SimpleNamespace(name=name, kind="scalar") for name in parameters or []]
    )
    return statement


def make_connection(statement: MagicMock | None = None) -> MagicMock:
    """Create a mock asyncpg Connection whose ``prepare`` returns ``statement``."""
    connection = MagicMock()
    connection.prepare = AsyncMock(return_value=statement or make_statement())
    connection.execute = AsyncMock(return_value="SELECT 1")
    return connection


class FakeRawPool:
    """In-memory stand-in for ``asyncpg.Pool``.

    At most ``max_size`` connections are out at once; ``acquire`` waits for a
    free slot and raises ``TimeoutError`` when none frees up in time, like
    asyncpg does.

    Attributes:
        connection: Connection handed out by every acquisition.
        acquire_error: When set, raised by ``acquire`` instead of leasing.
        in_use: Connections currently handed out.
        peak: Highest ``in_use`` observed.
    """

    def __init__(self, max_size: int = 10, connection: MagicMock | None = None) -> None:
        self.max_size = max_size
        self.connection = connection or make_connection()
        self.acquire_error: BaseException | None = None
        self.close_delay: float = 0.0
        self.in_use = 0
        self.peak = 0
        self.closed = False
        self.terminated = False
        self._slots = asyncio.Semaphore(max_size)

    async def acquire(self, timeout: float | None = None) -> MagicMock:
        if self.acquire_error is not None:
            raise self.acquire_error
        await asyncio.wait_for(self._slots.acquire(), timeout)
        self.in_use += 1
        self.peak = max(self.peak, self.in_use)
        return self.connection

    async def release(self, connection: MagicMock) -> None:
        self.in_use -= 1
        self._slots.release()

    async def close(self) -> None:
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True

    def get_size(self) -> int:
        return self.in_use

    def get_idle_size(self) -> int:
        return 0


@pytest.fixture
def db_config() -> DatabaseConfig:
    """Create a database configuration with short timeouts for testing."""
    return DatabaseConfig(
        host="localhost",
        database="test_db",
        max_pool_size=10,
        acquire_timeout=0.5,
        close_timeout=0.2,
    )


@pytest.fixture
def raw_pool(db_config: DatabaseConfig) -> FakeRawPool:
    """Create the fake asyncpg pool sized like ``db_config``."""
    return FakeRawPool(max_size=db_config.max_pool_size)


@pytest.fixture
def patch_create_pool(
    monkeypatch: pytest.MonkeyPatch, raw_pool: FakeRawPool
) -> AsyncMock:
    """Make ``ConnectionPool.open`` use the fake pool instead of asyncpg."""
    mock_create_pool = AsyncMock(return_value=raw_pool)
    monkeypatch.setattr("pg_mcp_server.db.pool.create_pool", mock_create_pool)
    return mock_create_pool


@pytest.fixture
async def pool(
    db_config: DatabaseConfig, patch_create_pool: AsyncMock
) -> AsyncIterator[ConnectionPool]:
    """Create an opened ConnectionPool backed by the fake pool."""
    connection_pool = ConnectionPool(db_config)
    await connection_pool.open()
    yield connection_pool
    await connection_pool.close()


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds, failing the test after ``timeout``."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)
