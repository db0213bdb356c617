"""MCP server and HTTP application for PostgreSQL MCP Server.

This module wires the pieces together: the connection pool, the query
executor, the tool registry, the MCP protocol server and the SSE transport,
plus the ``/health`` liveness route. Components are created per application
and reached through ``app.state``; nothing is kept in module globals.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp import types
from mcp.server.lowlevel import Server
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from pg_mcp_server import __version__
from pg_mcp_server.config.settings import Settings, get_settings
from pg_mcp_server.db.pool import ConnectionPool
from pg_mcp_server.models.errors import PgMcpError
from pg_mcp_server.services.query_executor import QueryExecutor
from pg_mcp_server.tools.registry import ToolRegistry
from pg_mcp_server.transport.sessions import SessionRegistry
from pg_mcp_server.transport.sse import SseTransport

logger = logging.getLogger(__name__)


def create_mcp_server(tools: ToolRegistry, server_name: str = "pg-mcp-server") -> Server:
    """Build the MCP protocol server exposing the registry's tools.

    Args:
        tools: Registry listing and dispatching the tools.
        server_name: Name announced to clients during initialization.

    Returns:
        Server: Low-level MCP server, run once per session by the transport.
    """
    server: Server = Server(server_name, version=__version__)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return tools.list_tools()

    # Arguments are validated by the registry's input models
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        result = await tools.dispatch(name, arguments)
        return result.to_call_tool_result()

    return server


async def health(request: Request) -> JSONResponse:
    """Report database reachability and the number of open sessions.

    The check runs ``SELECT 1`` through the executor, so it exercises the
    pool exactly like a tool call does.
    """
    state = request.app.state
    sessions = len(state.sessions)
    try:
        await state.executor.execute("SELECT 1")
    except PgMcpError as e:
        logger.warning("Health check failed: %s", e.message)
        return JSONResponse(
            {"status": "error", "database": e.message, "sessions": sessions},
            status_code=503,
        )

    return JSONResponse(
        {
            "status": "ok",
            "database": "connected",
            "sessions": sessions,
            "pool": state.pool.stats(),
        }
    )


def create_app(
    settings: Settings | None = None,
    pool: ConnectionPool | None = None,
) -> Starlette:
    """Create the HTTP application.

    The lifespan opens the pool on startup; on shutdown it closes every open
    session before closing the pool.

    Args:
        settings: Application settings; the global settings when omitted.
        pool: Connection pool to use; built from ``settings.database`` when omitted.

    Returns:
        Starlette: ASGI application serving ``/sse``, ``/messages`` and ``/health``.

    Example:
        >>> app = create_app()
        >>> uvicorn.run(app, host="0.0.0.0", port=3000)
    """
    settings = settings or get_settings()
    pool = pool or ConnectionPool(settings.database)
    executor = QueryExecutor(pool)
    tools = ToolRegistry(executor)
    sessions = SessionRegistry()
    transport = SseTransport(
        create_mcp_server(tools, settings.server.name),
        sessions,
        messages_path=settings.server.messages_path,
    )

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await pool.open()
        logger.info(
            "PG MCP Server ready",
            extra={
                "sse_path": settings.server.sse_path,
                "messages_path": settings.server.messages_path,
                "tools": tools.names,
            },
        )
        try:
            yield
        finally:
            closed = sessions.close_all()
            logger.info("Shutting down, closed %d open sessions", closed)
            await pool.close()

    app = Starlette(
        routes=[
            *transport.routes(settings.server.sse_path),
            Route("/health", endpoint=health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pool = pool
    app.state.executor = executor
    app.state.tools = tools
    app.state.sessions = sessions
    return app
