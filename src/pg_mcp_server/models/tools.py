"""Tool input and output models.

Each tool owns one input model; the set of models is closed and mirrors the
tool names exposed to clients.
"""

import json
from typing import Any

from mcp import types
from pydantic import BaseModel, ConfigDict, Field

from pg_mcp_server.models.query import QueryParam


class ToolInput(BaseModel):
    """Base class for tool arguments. Unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ExecuteQueryInput(ToolInput):
    """Arguments of ``execute_query``."""

    sql: str = Field(..., min_length=1, description="The SQL query to execute")
    params: list[QueryParam] = Field(
        default_factory=list,
        description="Optional parameterized query values ($1, $2, ...)",
    )


class ListTablesInput(ToolInput):
    """Arguments of ``list_tables``."""

    schema_name: str = Field(
        default="public", alias="schema", min_length=1, description="Schema name (default: public)"
    )


class DescribeTableInput(ToolInput):
    """Arguments of ``describe_table``."""

    table: str = Field(..., min_length=1, description="Table name")
    schema_name: str = Field(
        default="public", alias="schema", min_length=1, description="Schema name (default: public)"
    )


class ListSchemasInput(ToolInput):
    """``list_schemas`` takes no arguments."""


class GetDbStatsInput(ToolInput):
    """``get_db_stats`` takes no arguments."""


class ToolResult(BaseModel):
    """Text payload returned by a tool, flagged when it describes an error."""

    text: str
    is_error: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "ToolResult":
        """Build a successful result from a JSON-compatible payload."""
        return cls(text=json.dumps(payload, indent=2, default=str))

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        """Build an error result."""
        return cls(text=f"Error: {message}", is_error=True)

    def to_call_tool_result(self) -> types.CallToolResult:
        """Convert to the MCP wire type.

        Returns:
            types.CallToolResult: ``{content: [text], isError}``.
        """
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=self.text)],
            isError=self.is_error,
        )
