"""Query result models.

A ``QueryResult`` is the normalized output of one statement: the command's
row count, the column descriptors and the rows as JSON-compatible mappings.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Scalars accepted as positional statement parameters ($1, $2, ...)
QueryParam = str | int | float | bool | None


class ColumnDescriptor(BaseModel):
    """Name and type tag of one result column."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Column name")
    type_oid: int = Field(..., serialization_alias="dataTypeID", description="PostgreSQL type OID")
    type_name: str = Field(..., serialization_alias="dataType", description="PostgreSQL type name")


class QueryResult(BaseModel):
    """Normalized result of a single executed statement."""

    row_count: int | None = Field(
        default=None,
        serialization_alias="rowCount",
        description="Rows returned or affected; None for commands without a count (DDL)",
    )
    columns: list[ColumnDescriptor] = Field(
        default_factory=list, serialization_alias="fields", description="Result columns"
    )
    rows: list[dict[str, Any]] = Field(default_factory=list, description="Result rows")

    @property
    def first_row(self) -> dict[str, Any] | None:
        """Return the first row, or None for an empty result."""
        return self.rows[0] if self.rows else None

    def to_payload(self) -> dict[str, Any]:
        """Render the result with client-facing field names.

        Returns:
            dict: ``{"rowCount", "fields", "rows"}`` mapping.
        """
        return self.model_dump(by_alias=True)
