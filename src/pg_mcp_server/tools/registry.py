"""Tool registry for the database inspection tools.

The registry is a fixed mapping from tool name to its input model and
handler. Dispatch validates the arguments against the input model, runs the
handler and converts every application error into an error payload, so a
failed query never surfaces as a protocol fault.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import pydantic
from mcp import types

from pg_mcp_server.db.introspection import SchemaIntrospector
from pg_mcp_server.models.errors import PgMcpError, UnknownToolError, ValidationError
from pg_mcp_server.models.tools import (
    DescribeTableInput,
    ExecuteQueryInput,
    GetDbStatsInput,
    ListSchemasInput,
    ListTablesInput,
    ToolInput,
    ToolResult,
)
from pg_mcp_server.observability.metrics import MetricsCollector, metrics
from pg_mcp_server.observability.tracing import request_context
from pg_mcp_server.services.query_executor import QueryExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """Declaration of one tool: name, description, input model and handler."""

    name: str
    description: str
    input_model: type[ToolInput]
    handler: Callable[[Any], Awaitable[Any]]

    def to_mcp_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(by_alias=True),
        )


class ToolRegistry:
    """Validates and dispatches tool invocations.

    Example:
        >>> registry = ToolRegistry(executor)
        >>> result = await registry.dispatch("list_tables", {"schema": "public"})
        >>> result.is_error
        False
    """

    def __init__(
        self,
        executor: QueryExecutor,
        introspector: SchemaIntrospector | None = None,
        metrics_collector: MetricsCollector | None = None,
    ) -> None:
        """Initialize the registry with its fixed set of tools.

        Args:
            executor: Statement executor used by ``execute_query``.
            introspector: Catalog lookups; built on ``executor`` when omitted.
            metrics_collector: Metrics sink; defaults to the process singleton.
        """
        self.executor = executor
        self.introspector = introspector or SchemaIntrospector(executor)
        self.metrics = metrics_collector or metrics
        self._tools: dict[str, ToolSpec] = {spec.name: spec for spec in self._build_specs()}

    def _build_specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="execute_query",
                description=(
                    "Execute any SQL query against the PostgreSQL database. "
                    "Supports SELECT, INSERT, UPDATE, DELETE, DDL, etc."
                ),
                input_model=ExecuteQueryInput,
                handler=self._execute_query,
            ),
            ToolSpec(
                name="list_tables",
                description=(
                    "List all tables in a schema (default: public). "
                    "Returns table names, row estimates, and sizes."
                ),
                input_model=ListTablesInput,
                handler=self._list_tables,
            ),
            ToolSpec(
                name="describe_table",
                description=(
                    "Describe a table: columns, types, nullability, defaults, "
                    "indexes, and foreign keys."
                ),
                input_model=DescribeTableInput,
                handler=self._describe_table,
            ),
            ToolSpec(
                name="list_schemas",
                description="List all schemas in the database.",
                input_model=ListSchemasInput,
                handler=self._list_schemas,
            ),
            ToolSpec(
                name="get_db_stats",
                description=(
                    "Get database statistics: size, active connections, "
                    "cache hit ratio, top tables by size."
                ),
                input_model=GetDbStatsInput,
                handler=self._get_db_stats,
            ),
        ]

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[types.Tool]:
        """Return the MCP declarations of all tools."""
        return [spec.to_mcp_tool() for spec in self._tools.values()]

    def validate(self, name: str, arguments: dict[str, Any] | None) -> tuple[ToolSpec, ToolInput]:
        """Resolve a tool and validate its arguments.

        Args:
            name: Tool name sent by the client.
            arguments: Raw arguments object (None is treated as empty).

        Returns:
            tuple: The tool declaration and its parsed input.

        Raises:
            UnknownToolError: If no tool has this name.
            ValidationError: If the arguments do not match the input model.
        """
        spec = self._tools.get(name)
        if spec is None:
            raise UnknownToolError(name)

        try:
            params = spec.input_model.model_validate(arguments or {})
        except pydantic.ValidationError as e:
            problems = [
                f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
                for error in e.errors()
            ]
            raise ValidationError(
                message=f"Invalid arguments for tool '{name}': {'; '.join(problems)}",
                details={"tool": name, "errors": problems},
            ) from e
        return spec, params

    async def dispatch(self, name: str, arguments: dict[str, Any] | None) -> ToolResult:
        """Validate and run one tool invocation.

        Application errors (validation, pool, database) become an error
        ``ToolResult``. Anything else is a bug: it is logged and re-raised so
        that only this request fails.

        Args:
            name: Tool name.
            arguments: Raw arguments object.

        Returns:
            ToolResult: JSON payload, or ``Error: ...`` flagged as an error.
        """
        metric_name = name if name in self._tools else "unknown"
        start = time.perf_counter()

        async with request_context():
            logger.info("Tool call started", extra={"tool": name})
            try:
                spec, params = self.validate(name, arguments)
                payload = await spec.handler(params)
            except (UnknownToolError, ValidationError) as e:
                logger.info("Tool call rejected: %s", e.message, extra={"tool": name})
                self.metrics.increment_tool_call(tool=metric_name, status="validation_failed")
                return ToolResult.error(e.message)
            except PgMcpError as e:
                logger.warning(
                    "Tool call failed: %s",
                    e.message,
                    extra={"tool": name, "error": e.to_dict()},
                )
                self.metrics.increment_tool_call(tool=metric_name, status=str(e.code))
                return ToolResult.error(e.message)
            except Exception:
                logger.exception("Unexpected error in tool handler", extra={"tool": name})
                self.metrics.increment_tool_call(tool=metric_name, status="internal_error")
                raise
            finally:
                self.metrics.observe_tool_duration(metric_name, time.perf_counter() - start)

            logger.info("Tool call completed", extra={"tool": name})
            self.metrics.increment_tool_call(tool=metric_name, status="success")
            return ToolResult.from_payload(payload)

    async def _execute_query(self, params: ExecuteQueryInput) -> dict[str, Any]:
        result = await self.executor.execute(params.sql, params.params)
        return result.to_payload()

    async def _list_tables(self, params: ListTablesInput) -> list[dict[str, Any]]:
        return await self.introspector.list_tables(params.schema_name)

    async def _describe_table(self, params: DescribeTableInput) -> dict[str, Any]:
        description = await self.introspector.describe_table(params.table, params.schema_name)
        return description.model_dump(by_alias=True)

    async def _list_schemas(self, params: ListSchemasInput) -> list[dict[str, Any]]:
        return await self.introspector.list_schemas()

    async def _get_db_stats(self, params: GetDbStatsInput) -> dict[str, Any]:
        stats = await self.introspector.get_db_stats()
        return stats.model_dump(by_alias=True)
