"""PostgreSQL MCP Server - database inspection tools over SSE.

A Model Context Protocol server that exposes SQL execution and catalog
inspection of a PostgreSQL database to streaming clients, backed by a
bounded connection pool.
"""

__version__ = "1.0.0"

from pg_mcp_server.config.settings import Settings, get_settings
from pg_mcp_server.models.errors import (
    DatabaseConnectionError,
    DatabaseError,
    ErrorCode,
    PgMcpError,
    PoolExhaustedError,
    PoolTimeoutError,
    SessionNotFoundError,
    ValidationError,
)
from pg_mcp_server.models.query import QueryResult

__all__ = [
    "__version__",
    # Config
    "Settings",
    "get_settings",
    # Models
    "QueryResult",
    # Errors
    "PgMcpError",
    "ValidationError",
    "DatabaseError",
    "DatabaseConnectionError",
    "PoolTimeoutError",
    "PoolExhaustedError",
    "SessionNotFoundError",
    "ErrorCode",
]
