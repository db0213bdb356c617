"""Database connection and introspection utilities.

This package provides connection pool management (``db.pool``) and catalog
introspection (``db.introspection``) for PostgreSQL. Only the pool is
re-exported here: introspection runs through the query executor, which
itself depends on the pool.
"""

from pg_mcp_server.db.pool import ConnectionPool, create_pool

__all__ = [
    "ConnectionPool",
    "create_pool",
]
