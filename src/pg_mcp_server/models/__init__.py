"""Data models module."""

from pg_mcp_server.models.errors import (
    DatabaseConnectionError,
    DatabaseError,
    ErrorCode,
    ExecutionTimeoutError,
    PgMcpError,
    PoolExhaustedError,
    PoolTimeoutError,
    SessionNotFoundError,
    UnknownToolError,
    ValidationError,
)
from pg_mcp_server.models.query import ColumnDescriptor, QueryParam, QueryResult
from pg_mcp_server.models.schema import (
    ConnectionCounts,
    DatabaseStats,
    TableDescription,
    compute_cache_hit_ratio,
)
from pg_mcp_server.models.tools import (
    DescribeTableInput,
    ExecuteQueryInput,
    GetDbStatsInput,
    ListSchemasInput,
    ListTablesInput,
    ToolInput,
    ToolResult,
)

__all__ = [
    # Query models
    "ColumnDescriptor",
    "QueryParam",
    "QueryResult",
    # Schema models
    "ConnectionCounts",
    "DatabaseStats",
    "TableDescription",
    "compute_cache_hit_ratio",
    # Tool models
    "ToolInput",
    "ExecuteQueryInput",
    "ListTablesInput",
    "DescribeTableInput",
    "ListSchemasInput",
    "GetDbStatsInput",
    "ToolResult",
    # Error models
    "ErrorCode",
    "PgMcpError",
    "ValidationError",
    "UnknownToolError",
    "DatabaseError",
    "DatabaseConnectionError",
    "ExecutionTimeoutError",
    "PoolTimeoutError",
    "PoolExhaustedError",
    "SessionNotFoundError",
]
