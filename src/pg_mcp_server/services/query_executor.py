"""Query executor for PostgreSQL statements.

This module runs one statement per call on a leased connection, binds
positional parameters, normalizes the result and serializes PostgreSQL
types into JSON-compatible values.
"""

import datetime
import decimal
import ipaddress
import json
import logging
import uuid
from collections.abc import Sequence
from typing import Any

import anyio
import asyncpg

from pg_mcp_server.db.pool import ConnectionPool
from pg_mcp_server.models.errors import (
    DatabaseConnectionError,
    DatabaseError,
    ExecutionTimeoutError,
)
from pg_mcp_server.models.query import ColumnDescriptor, QueryParam, QueryResult
from pg_mcp_server.observability.metrics import MetricsCollector, metrics

logger = logging.getLogger(__name__)


class QueryExecutor:
    """Statement executor on top of the connection pool.

    Each call leases its own connection, so the executor is safe to share
    between concurrent tool handlers. Statements are never retried: they may
    be INSERT/UPDATE/DDL, and a retry could apply their side effects twice.

    Example:
        >>> executor = QueryExecutor(pool)
        >>> result = await executor.execute("SELECT * FROM users WHERE id = $1", [42])
        >>> print(result.row_count)
    """

    def __init__(
        self,
        pool: ConnectionPool,
        metrics_collector: MetricsCollector | None = None,
    ) -> None:
        """Initialize query executor.

        Args:
            pool: Connection pool connections are leased from.
            metrics_collector: Metrics sink; defaults to the process singleton.
        """
        self.pool = pool
        self.metrics = metrics_collector or metrics

    async def execute(self, sql: str, params: Sequence[QueryParam] = ()) -> QueryResult:
        """Execute a statement with positional parameters.

        The statement round-trip runs shielded from cancellation: when the
        client that asked for it goes away, the statement still completes and
        the connection goes back to the pool in a clean state.

        Parameters are converted to the types PostgreSQL infers for their
        placeholders (see ``coerce_params``). SQL holding several statements
        is accepted when no parameters are given; it then reports the count
        of the last statement and no rows.

        Args:
            sql: Statement text, using ``$1``, ``$2``... placeholders.
            params: Values bound to the placeholders, in order.

        Returns:
            QueryResult: Row count, column descriptors and serialized rows.

        Raises:
            PoolTimeoutError: No connection could be leased in time.
            DatabaseConnectionError: The connection failed during execution.
            ExecutionTimeoutError: The configured command timeout elapsed.
            DatabaseError: The database rejected the statement or a parameter.
        """
        async with self.pool.lease() as connection:
            with anyio.CancelScope(shield=True):
                try:
                    with self.metrics.db_query_duration.time():
                        try:
                            statement = await connection.prepare(sql)
                        except asyncpg.PostgresSyntaxError as e:
                            if params or not _is_multi_statement_error(e):
                                raise
                            # Scripts only run through the simple query protocol
                            status = await connection.execute(sql)
                            return QueryResult(row_count=parse_row_count(status, 0))
                        args = coerce_params(params, statement.get_parameters())
                        records = await statement.fetch(*args)
                except asyncpg.PostgresError as e:
                    raise DatabaseError(
                        message=str(e),
                        details={
                            "error_code": getattr(e, "sqlstate", None),
                            "sql": sql[:200],
                        },
                    ) from e
                except asyncpg.exceptions.DataError as e:
                    # Raised client-side when a parameter cannot be encoded
                    raise DatabaseError(
                        message=str(e),
                        details={"sql": sql[:200], "param_count": len(params)},
                    ) from e
                except TimeoutError as e:
                    raise ExecutionTimeoutError(
                        message=(
                            "Query execution exceeded timeout of "
                            f"{self.pool.config.command_timeout} seconds"
                        ),
                        details={"sql": sql[:200]},
                    ) from e
                except (OSError, asyncpg.InterfaceError) as e:
                    raise DatabaseConnectionError(
                        message=f"Database connection failed during query: {e!s}",
                        details={"error_type": type(e).__name__},
                    ) from e

                columns = [
                    ColumnDescriptor(
                        name=attribute.name,
                        type_oid=attribute.type.oid,
                        type_name=attribute.type.name,
                    )
                    for attribute in statement.get_attributes()
                ]
                status = statement.get_statusmsg()

        rows = self._serialize_results([dict(record) for record in records])
        return QueryResult(
            row_count=parse_row_count(status, len(rows)),
            columns=columns,
            rows=rows,
        )

    def _serialize_results(self, results: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Serialize PostgreSQL-specific types to JSON-compatible types.

        This method handles serialization of types that are not natively
        JSON-serializable, including:
        - datetime types: converted to ISO format strings
        - decimal.Decimal: converted to float
        - uuid.UUID and network addresses: converted to strings
        - bytes: converted to hexadecimal string
        - asyncpg ranges and records, nested lists/dicts: recursively serialized

        Args:
            results: List of row dictionaries with potentially unserializable values.

        Returns:
            list: Results with all values serialized to JSON-compatible types.
        """

        def serialize_value(value: Any) -> Any:
            if value is None:
                return None

            if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
                return value.isoformat()

            if isinstance(value, datetime.timedelta):
                return str(value)

            if isinstance(value, decimal.Decimal):
                return float(value)

            if isinstance(
                value,
                (
                    uuid.UUID,
                    ipaddress.IPv4Address,
                    ipaddress.IPv6Address,
                    ipaddress.IPv4Network,
                    ipaddress.IPv6Network,
                    ipaddress.IPv4Interface,
                    ipaddress.IPv6Interface,
                ),
            ):
                return str(value)

            if isinstance(value, (bytes, bytearray, memoryview)):
                return bytes(value).hex()

            if isinstance(value, asyncpg.Range):
                return {
                    "lower": serialize_value(value.lower),
                    "upper": serialize_value(value.upper),
                    "lower_inc": value.lower_inc,
                    "upper_inc": value.upper_inc,
                    "isempty": value.isempty,
                }

            if isinstance(value, asyncpg.Record):
                return {k: serialize_value(v) for k, v in value.items()}

            if isinstance(value, (list, tuple)):
                return [serialize_value(v) for v in value]

            if isinstance(value, dict):
                return {k: serialize_value(v) for k, v in value.items()}

            return value

        return [{key: serialize_value(value) for key, value in row.items()} for row in results]


def parse_row_count(status: str | None, fetched: int) -> int | None:
    """Extract the row count from a command status tag.

    Args:
        status: Status tag such as ``"SELECT 3"``, ``"INSERT 0 5"`` or
            ``"CREATE TABLE"``.
        fetched: Number of rows actually returned.

    Returns:
        The trailing count of the tag, ``fetched`` when no tag is available,
        or None for commands that report no count.

    Example:
        >>> parse_row_count("UPDATE 4", 0)
        4
        >>> parse_row_count("CREATE TABLE", 0) is None
        True
    """
    if not status:
        return fetched
    last = status.rsplit(" ", 1)[-1]
    if last.isdigit():
        return int(last)
    return None


_INTEGER_TYPES = frozenset({"int2", "int4", "int8", "oid"})
_FLOAT_TYPES = frozenset({"float4", "float8"})
_TEXT_TYPES = frozenset({"text", "varchar", "bpchar", "char", "name", "unknown", "xml"})
_JSON_TYPES = frozenset({"json", "jsonb"})
_TRUE_LITERALS = frozenset({"t", "true", "y", "yes", "on", "1"})
_FALSE_LITERALS = frozenset({"f", "false", "n", "no", "off", "0"})


def _is_multi_statement_error(error: asyncpg.PostgresSyntaxError) -> bool:
    return "multiple commands" in str(error)


def _to_bool(value: QueryParam) -> bool:
    if isinstance(value, str):
        literal = value.strip().lower()
        if literal in _TRUE_LITERALS:
            return True
        if literal in _FALSE_LITERALS:
            return False
        raise ValueError(value)
    if isinstance(value, bool) or value in (0, 1):
        return bool(value)
    raise ValueError(value)


def _to_int(value: QueryParam) -> int:
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(value)
        return int(value)
    return int(value)


def coerce_param(value: QueryParam, type_name: str) -> Any:
    """Convert a JSON scalar to the Python type asyncpg encodes ``type_name`` from.

    PostgreSQL reads bound parameters as text, so ``"42"`` is a valid
    integer and ``5`` a valid text value. asyncpg instead encodes each
    parameter in binary and only accepts the matching Python type. Types
    without a conversion rule are passed through unchanged.

    Args:
        value: Parameter as received from the client.
        type_name: Name of the type PostgreSQL inferred for the placeholder.

    Raises:
        ValueError: ``value`` is not a valid literal of the type.
    """
    if value is None:
        return None
    if type_name in _TEXT_TYPES:
        if isinstance(value, bool):
            return "true" if value else "false"
        return value if isinstance(value, str) else str(value)
    if type_name in _JSON_TYPES:
        return value if isinstance(value, str) else json.dumps(value)
    if type_name == "bool":
        return _to_bool(value)
    if isinstance(value, bool):
        # Booleans are only valid for the types above
        return value
    if type_name in _INTEGER_TYPES:
        return _to_int(value.strip() if isinstance(value, str) else value)
    if type_name in _FLOAT_TYPES:
        return float(value)
    if type_name == "numeric":
        return decimal.Decimal(str(value).strip())
    if isinstance(value, str):
        if type_name == "date":
            return datetime.date.fromisoformat(value.strip())
        if type_name in ("timestamp", "timestamptz"):
            return datetime.datetime.fromisoformat(value.strip())
        if type_name in ("time", "timetz"):
            return datetime.time.fromisoformat(value.strip())
    return value


def coerce_params(params: Sequence[QueryParam], parameter_types: Sequence[Any]) -> list[Any]:
    """Convert each parameter to the type of its placeholder.

    Args:
        params: Values in placeholder order.
        parameter_types: ``asyncpg.types.Type`` per placeholder, as returned by
            ``PreparedStatement.get_parameters()``.

    Returns:
        list: Converted values. Values without a matching placeholder are kept
        as-is so that asyncpg reports the count mismatch.

    Raises:
        DatabaseError: A value is not a valid literal of its placeholder's type.
    """
    converted: list[Any] = []
    for index, value in enumerate(params):
        if index >= len(parameter_types) or parameter_types[index].kind != "scalar":
            converted.append(value)
            continue
        type_name = parameter_types[index].name
        try:
            converted.append(coerce_param(value, type_name))
        except (ValueError, TypeError, decimal.InvalidOperation) as e:
            raise DatabaseError(
                message=f'invalid input syntax for type {type_name}: "{value}"',
                details={"param_index": index + 1, "type": type_name},
            ) from e
    return converted
