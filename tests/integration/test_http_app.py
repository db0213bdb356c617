"""Integration tests for the HTTP surface.

The application is exercised end to end through ``httpx.ASGITransport`` with
the asyncpg pool replaced by the in-memory fake: routing, the lifespan, the
health check and the message route.
"""

from collections.abc import AsyncIterator

import httpx
import pytest
from conftest import FakeRawPool, make_connection, make_statement
from starlette.applications import Starlette

from pg_mcp_server.config.settings import DatabaseConfig, Settings
from pg_mcp_server.db.pool import ConnectionPool
from pg_mcp_server.server import create_app


@pytest.fixture
async def app(
    db_config: DatabaseConfig, raw_pool: FakeRawPool, patch_create_pool
) -> AsyncIterator[Starlette]:
    """Create the application and run its lifespan around the test."""
    raw_pool.connection = make_connection(make_statement(rows=[{"?column?": 1}]))
    application = create_app(Settings(database=db_config), pool=ConnectionPool(db_config))
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app: Starlette) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


class TestHealth:
    """Test the /health route."""

    @pytest.mark.asyncio
    async def test_healthy(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "connected"
        assert body["sessions"] == 0
        assert body["pool"]["max_size"] == 10
        assert body["pool"]["leased"] == 0

    @pytest.mark.asyncio
    async def test_reports_open_sessions(self, app: Starlette, client: httpx.AsyncClient) -> None:
        app.state.sessions.open()
        app.state.sessions.open()

        response = await client.get("/health")

        assert response.json()["sessions"] == 2

    @pytest.mark.asyncio
    async def test_flips_to_unavailable_and_back(
        self, client: httpx.AsyncClient, raw_pool: FakeRawPool
    ) -> None:
        """Test that health follows the database going down and coming back."""
        raw_pool.acquire_error = ConnectionRefusedError("Connection refused")

        down = await client.get("/health")

        assert down.status_code == 503
        assert down.json()["status"] == "error"
        assert "Connection refused" in down.json()["database"]

        raw_pool.acquire_error = None

        up = await client.get("/health")

        assert up.status_code == 200
        assert up.json()["database"] == "connected"

    @pytest.mark.asyncio
    async def test_unavailable_when_pool_exhausted(
        self, app: Starlette, client: httpx.AsyncClient
    ) -> None:
        pool = app.state.pool
        held = [await pool.acquire() for _ in range(10)]

        response = await client.get("/health")

        assert response.status_code == 503
        assert "connections are in use" in response.json()["database"]
        for connection in held:
            await pool.release(connection)


class TestMessages:
    """Test the /messages route."""

    @pytest.mark.asyncio
    async def test_missing_session_id(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/messages", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_session(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/messages",
            params={"sessionId": "does-not-exist"},
            json={"jsonrpc": "2.0", "id": 1, "method": "ping"},
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}

    @pytest.mark.asyncio
    async def test_closed_session(self, app: Starlette, client: httpx.AsyncClient) -> None:
        session = app.state.sessions.open()
        app.state.sessions.close(session.id)

        response = await client.post(
            "/messages",
            params={"sessionId": session.id},
            json={"jsonrpc": "2.0", "id": 1, "method": "ping"},
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_body(self, app: Starlette, client: httpx.AsyncClient) -> None:
        session = app.state.sessions.open()

        response = await client.post(
            "/messages", params={"sessionId": session.id}, content=b"not json"
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_message_is_delivered(self, app: Starlette, client: httpx.AsyncClient) -> None:
        session = app.state.sessions.open()

        response = await client.post(
            "/messages",
            params={"sessionId": session.id},
            json={"jsonrpc": "2.0", "id": 1, "method": "ping"},
        )

        assert response.status_code == 202
        delivered = session.inbound.receive_nowait()
        assert delivered.message.root.method == "ping"
        assert delivered.message.root.id == 1

    @pytest.mark.asyncio
    async def test_get_not_allowed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/messages")

        assert response.status_code == 405


class TestLifespan:
    """Test startup and shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_closes_sessions_then_pool(
        self, db_config: DatabaseConfig, raw_pool: FakeRawPool, patch_create_pool
    ) -> None:
        pool = ConnectionPool(db_config)
        application = create_app(Settings(database=db_config), pool=pool)

        async with application.router.lifespan_context(application):
            assert pool.is_open
            session = application.state.sessions.open()

        assert not session.is_open
        assert len(application.state.sessions) == 0
        assert not pool.is_open
        assert raw_pool.closed
