"""Database introspection models.

These models shape the payloads of the catalog tools. Rows coming from the
catalog queries are kept as plain mappings so the column names reported by
PostgreSQL reach the client unchanged.
"""

from typing import Any

from pydantic import BaseModel, Field

Row = dict[str, Any]


class TableDescription(BaseModel):
    """Columns, indexes and foreign keys of a single table."""

    table: str = Field(..., description="Table name")
    schema_name: str = Field(..., serialization_alias="schema", description="Schema name")
    columns: list[Row] = Field(default_factory=list, description="Column definitions")
    indexes: list[Row] = Field(default_factory=list, description="Index definitions")
    foreign_keys: list[Row] = Field(
        default_factory=list, serialization_alias="foreignKeys", description="Foreign keys"
    )


class ConnectionCounts(BaseModel):
    """Backend connection counts for the current database."""

    total: int = 0
    active: int = 0
    idle: int = 0


class DatabaseStats(BaseModel):
    """Size, activity and cache statistics of the current database."""

    database: Row = Field(default_factory=dict, description="Database name and pretty size")
    connections: ConnectionCounts = Field(default_factory=ConnectionCounts)
    cache_hit_ratio: float | None = Field(
        default=None,
        serialization_alias="cacheHitRatio",
        description="Heap block cache hit percentage; None when nothing was read yet",
    )
    top_tables_by_size: list[Row] = Field(
        default_factory=list, serialization_alias="topTablesBySize"
    )


def compute_cache_hit_ratio(blocks_hit: int | float | None, blocks_read: int | float | None) -> float | None:
    """Compute the heap cache hit percentage.

    Args:
        blocks_hit: Heap blocks served from shared buffers.
        blocks_read: Heap blocks read from disk.

    Returns:
        Percentage rounded to two decimals, or None when no block was touched.

    Example:
        >>> compute_cache_hit_ratio(995, 5)
        99.5
        >>> compute_cache_hit_ratio(0, 0) is None
        True
    """
    hit = float(blocks_hit or 0)
    read = float(blocks_read or 0)
    total = hit + read
    if total == 0:
        return None
    return round(hit * 100.0 / total, 2)
