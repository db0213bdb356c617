"""Service layer module."""

from pg_mcp_server.services.query_executor import QueryExecutor, parse_row_count

__all__ = [
    "QueryExecutor",
    "parse_row_count",
]
