"""End-to-end tests for the MCP protocol over SSE.

This module runs a full client conversation against the application: the
event stream is opened at the ASGI level, JSON-RPC messages are posted to the
announced endpoint, and responses are read back from the stream. The database
is the in-memory fake pool.
"""

import asyncio
import json
import re
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest
from conftest import FakeRawPool, make_column, make_connection, make_statement, wait_for_condition
from mcp import types
from starlette.applications import Starlette

from pg_mcp_server.config.settings import DatabaseConfig, Settings
from pg_mcp_server.db.pool import ConnectionPool
from pg_mcp_server.server import create_app


class McpSseClient:
    """Minimal MCP client speaking to the app over its SSE transport."""

    def __init__(self, app: Starlette) -> None:
        self.app = app
        self.sent: list[dict[str, Any]] = []
        self.disconnect = asyncio.Event()
        self.http = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://testserver"
        )
        self.endpoint: str | None = None
        self._task: asyncio.Task | None = None

    async def connect(self) -> None:
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": "/sse",
            "raw_path": b"/sse",
            "root_path": "",
            "query_string": b"",
            "headers": [(b"accept", b"text/event-stream")],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        self._task = asyncio.create_task(self.app(scope, self._receive, self._send))
        await wait_for_condition(lambda: "event: endpoint" in self.body)
        self.endpoint = re.search(r"data: (/messages\?sessionId=\w+)", self.body).group(1)

    async def close(self) -> None:
        self.disconnect.set()
        if self._task is not None:
            await asyncio.wait_for(self._task, timeout=2)
        await self.http.aclose()

    async def _receive(self) -> dict[str, Any]:
        await self.disconnect.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    @property
    def body(self) -> str:
        return b"".join(
            message.get("body", b"")
            for message in self.sent
            if message["type"] == "http.response.body"
        ).decode()

    def messages(self) -> list[dict[str, Any]]:
        return [
            json.loads(line[len("data: "):])
            for line in self.body.splitlines()
            if line.startswith("data: {")
        ]

    def response(self, request_id: int) -> dict[str, Any] | None:
        for message in self.messages():
            if message.get("id") == request_id:
                return message
        return None

    async def post(self, message: dict[str, Any]) -> httpx.Response:
        return await self.http.post(self.endpoint, json=message)

    async def request(self, request_id: int, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        response = await self.post(message)
        assert response.status_code == 202
        await wait_for_condition(lambda: self.response(request_id) is not None)
        return self.response(request_id)

    async def initialize(self) -> dict[str, Any]:
        result = await self.request(
            1,
            "initialize",
            {
                "protocolVersion": types.LATEST_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "e2e", "version": "0.0.1"},
            },
        )
        response = await self.post({"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert response.status_code == 202
        return result


@pytest.fixture
async def app(
    db_config: DatabaseConfig, raw_pool: FakeRawPool, patch_create_pool
) -> AsyncIterator[Starlette]:
    raw_pool.connection = make_connection(
        make_statement(rows=[{"one": 1}], columns=[make_column("one", "int4", 23)])
    )
    application = create_app(Settings(database=db_config), pool=ConnectionPool(db_config))
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app: Starlette) -> AsyncIterator[McpSseClient]:
    mcp_client = McpSseClient(app)
    await mcp_client.connect()
    yield mcp_client
    await mcp_client.close()


class TestMCPServer:
    """E2E tests for MCP server functionality."""

    @pytest.mark.asyncio
    async def test_initialize(self, client: McpSseClient) -> None:
        response = await client.initialize()

        assert response["result"]["serverInfo"]["name"] == "pg-mcp-server"
        assert "tools" in response["result"]["capabilities"]

    @pytest.mark.asyncio
    async def test_list_tools(self, client: McpSseClient) -> None:
        await client.initialize()

        response = await client.request(2, "tools/list")

        names = [tool["name"] for tool in response["result"]["tools"]]
        assert names == [
            "execute_query",
            "list_tables",
            "describe_table",
            "list_schemas",
            "get_db_stats",
        ]

    @pytest.mark.asyncio
    async def test_execute_query(self, client: McpSseClient, raw_pool: FakeRawPool) -> None:
        await client.initialize()

        response = await client.request(
            3, "tools/call", {"name": "execute_query", "arguments": {"sql": "SELECT 1 AS one"}}
        )

        result = response["result"]
        assert result["isError"] is False
        payload = json.loads(result["content"][0]["text"])
        assert payload["rowCount"] == 1
        assert payload["rows"] == [{"one": 1}]
        assert raw_pool.in_use == 0

    @pytest.mark.asyncio
    async def test_tool_error_is_a_result_not_a_fault(
        self, client: McpSseClient, raw_pool: FakeRawPool
    ) -> None:
        await client.initialize()
        raw_pool.acquire_error = ConnectionRefusedError("Connection refused")

        response = await client.request(
            4, "tools/call", {"name": "list_schemas", "arguments": {}}
        )

        assert "error" not in response
        assert response["result"]["isError"] is True
        assert response["result"]["content"][0]["text"].startswith("Error: ")

    @pytest.mark.asyncio
    async def test_unknown_tool(self, client: McpSseClient) -> None:
        await client.initialize()

        response = await client.request(5, "tools/call", {"name": "drop_everything", "arguments": {}})

        assert response["result"]["isError"] is True
        assert response["result"]["content"][0]["text"] == "Error: Unknown tool: drop_everything"

    @pytest.mark.asyncio
    async def test_session_closed_after_disconnect(
        self, app: Starlette, client: McpSseClient
    ) -> None:
        endpoint = client.endpoint
        assert len(app.state.sessions) == 1

        client.disconnect.set()
        await asyncio.wait_for(client._task, timeout=2)

        assert len(app.state.sessions) == 0
        response = await client.http.post(
            endpoint, json={"jsonrpc": "2.0", "id": 9, "method": "ping"}
        )
        assert response.status_code == 404
