"""PostgreSQL catalog introspection.

This module provides the catalog lookups behind the inspection tools. Every
lookup runs through the ``QueryExecutor`` and therefore through the pool, one
leased connection per statement.
"""

import asyncio
import logging
from typing import Any

from pg_mcp_server.models.query import QueryResult
from pg_mcp_server.models.schema import (
    ConnectionCounts,
    DatabaseStats,
    TableDescription,
    compute_cache_hit_ratio,
)
from pg_mcp_server.services.query_executor import QueryExecutor

logger = logging.getLogger(__name__)

SYSTEM_SCHEMAS = ("pg_catalog", "information_schema", "pg_toast")

LIST_TABLES_SQL = """
    SELECT
        t.table_name,
        t.table_type,
        pg_size_pretty(
            pg_total_relation_size(quote_ident(t.table_schema) || '.' || quote_ident(t.table_name))
        ) AS total_size,
        COALESCE(s.n_live_tup, 0) AS estimated_rows
    FROM information_schema.tables t
    LEFT JOIN pg_stat_user_tables s
        ON s.schemaname = t.table_schema AND s.relname = t.table_name
    WHERE t.table_schema = $1
    ORDER BY t.table_name
"""

TABLE_COLUMNS_SQL = """
    SELECT
        column_name,
        data_type,
        character_maximum_length,
        is_nullable,
        column_default,
        ordinal_position
    FROM information_schema.columns
    WHERE table_schema = $1 AND table_name = $2
    ORDER BY ordinal_position
"""

TABLE_INDEXES_SQL = """
    SELECT indexname, indexdef
    FROM pg_indexes
    WHERE schemaname = $1 AND tablename = $2
    ORDER BY indexname
"""

TABLE_FOREIGN_KEYS_SQL = """
    SELECT
        kcu.column_name,
        ccu.table_name AS foreign_table,
        ccu.column_name AS foreign_column,
        rc.update_rule,
        rc.delete_rule
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema
    JOIN information_schema.referential_constraints rc
        ON tc.constraint_name = rc.constraint_name AND tc.table_schema = rc.constraint_schema
    JOIN information_schema.constraint_column_usage ccu
        ON ccu.constraint_name = rc.unique_constraint_name
        AND ccu.constraint_schema = rc.unique_constraint_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
      AND tc.table_schema = $1
      AND tc.table_name = $2
"""

LIST_SCHEMAS_SQL = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE schema_name <> ALL($1::text[])
    ORDER BY schema_name
"""

DATABASE_SIZE_SQL = """
    SELECT
        current_database() AS database_name,
        pg_size_pretty(pg_database_size(current_database())) AS database_size
"""

CONNECTION_COUNTS_SQL = """
    SELECT
        count(*) AS total,
        count(*) FILTER (WHERE state = 'active') AS active,
        count(*) FILTER (WHERE state = 'idle') AS idle
    FROM pg_stat_activity
    WHERE datname = current_database()
"""

CACHE_BLOCKS_SQL = """
    SELECT
        COALESCE(sum(heap_blks_hit), 0) AS blocks_hit,
        COALESCE(sum(heap_blks_read), 0) AS blocks_read
    FROM pg_statio_user_tables
"""

TOP_TABLES_SQL = """
    SELECT
        relname AS table_name,
        pg_size_pretty(pg_total_relation_size(relid)) AS total_size,
        n_live_tup AS live_rows
    FROM pg_stat_user_tables
    ORDER BY pg_total_relation_size(relid) DESC
    LIMIT $1
"""


async def gather_all_or_fail(*lookups: Any) -> list[QueryResult]:
    """Run lookups concurrently and fail if any of them failed.

    Every lookup is awaited to completion before the outcome is decided, so
    each one has released its connection by the time an error is raised.

    Args:
        lookups: Awaitables producing ``QueryResult``.

    Returns:
        list[QueryResult]: Results in argument order.

    Raises:
        The first exception (in argument order) raised by any lookup.
    """
    outcomes = await asyncio.gather(*lookups, return_exceptions=True)
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return list(outcomes)


class SchemaIntrospector:
    """Catalog lookups used by the inspection tools.

    Attributes:
        executor: Statement executor every lookup goes through.
        top_tables_limit: Number of tables reported by ``get_db_stats``.
    """

    def __init__(self, executor: QueryExecutor, top_tables_limit: int = 10) -> None:
        self.executor = executor
        self.top_tables_limit = top_tables_limit

    async def list_tables(self, schema: str = "public") -> list[dict[str, Any]]:
        """List tables of a schema with type, total size and row estimate."""
        result = await self.executor.execute(LIST_TABLES_SQL, [schema])
        return result.rows

    async def describe_table(self, table: str, schema: str = "public") -> TableDescription:
        """Fetch columns, indexes and foreign keys of a table concurrently.

        The call is all-or-nothing: if any of the three lookups fails the
        whole description fails, even when the other two succeeded.

        Args:
            table: Table name.
            schema: Schema name.

        Returns:
            TableDescription: Empty lists for a table without indexes or
            foreign keys.
        """
        columns, indexes, foreign_keys = await gather_all_or_fail(
            self.executor.execute(TABLE_COLUMNS_SQL, [schema, table]),
            self.executor.execute(TABLE_INDEXES_SQL, [schema, table]),
            self.executor.execute(TABLE_FOREIGN_KEYS_SQL, [schema, table]),
        )
        return TableDescription(
            table=table,
            schema_name=schema,
            columns=columns.rows,
            indexes=indexes.rows,
            foreign_keys=foreign_keys.rows,
        )

    async def list_schemas(self) -> list[dict[str, Any]]:
        """List non-system schemas."""
        result = await self.executor.execute(LIST_SCHEMAS_SQL, [list(SYSTEM_SCHEMAS)])
        return result.rows

    async def get_db_stats(self) -> DatabaseStats:
        """Collect size, connection, cache and top-table statistics concurrently.

        Like ``describe_table``, this is all-or-nothing across its four lookups.

        Returns:
            DatabaseStats: ``cache_hit_ratio`` is None when no heap block has
            been read or hit yet.
        """
        size, connections, cache, top_tables = await gather_all_or_fail(
            self.executor.execute(DATABASE_SIZE_SQL),
            self.executor.execute(CONNECTION_COUNTS_SQL),
            self.executor.execute(CACHE_BLOCKS_SQL),
            self.executor.execute(TOP_TABLES_SQL, [self.top_tables_limit]),
        )

        cache_row = cache.first_row or {}
        return DatabaseStats(
            database=size.first_row or {},
            connections=ConnectionCounts(**(connections.first_row or {})),
            cache_hit_ratio=compute_cache_hit_ratio(
                cache_row.get("blocks_hit"), cache_row.get("blocks_read")
            ),
            top_tables_by_size=top_tables.rows,
        )
