"""Application errors for PostgreSQL MCP Server.

Every failure the server reports to a client is a ``PgMcpError`` carrying an
``ErrorCode``. Tool dispatch turns them into error payloads; the HTTP layer
turns them into status codes.
"""

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Machine-readable error codes."""

    # Rejected requests
    VALIDATION_FAILED = "validation_failed"
    UNKNOWN_TOOL = "unknown_tool"
    SESSION_NOT_FOUND = "session_not_found"

    # Failures while serving a valid request
    INTERNAL_ERROR = "internal_error"
    DATABASE_ERROR = "database_error"
    DATABASE_CONNECTION_ERROR = "database_connection_error"
    EXECUTION_TIMEOUT = "execution_timeout"

    # Connection pool pressure
    POOL_TIMEOUT = "pool_timeout"
    POOL_EXHAUSTED = "pool_exhausted"


class PgMcpError(Exception):
    """Base class of all application errors.

    Attributes:
        message: Human-readable message, shown to clients as ``Error: <message>``.
        code: Error code.
        details: Extra context for logs; never sent to clients.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Structured form of the error, for logging.

        Returns:
            dict: ``code`` and ``message``, plus ``details`` when present.
        """
        data: dict[str, Any] = {"code": str(self.code), "message": self.message}
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"


class ValidationError(PgMcpError):
    """Tool arguments do not match the tool's input model."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.VALIDATION_FAILED, details)


class UnknownToolError(PgMcpError):
    """A client invoked a tool that is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}", ErrorCode.UNKNOWN_TOOL, {"tool": tool_name})


class DatabaseError(PgMcpError):
    """The database rejected or failed a statement.

    ``details["error_code"]`` holds the SQLSTATE when the server reported one.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.DATABASE_ERROR, details)


class DatabaseConnectionError(PgMcpError):
    """A connection could not be established or broke while in use."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.DATABASE_CONNECTION_ERROR, details)


class ExecutionTimeoutError(PgMcpError):
    """A statement ran longer than the configured command timeout."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorCode.EXECUTION_TIMEOUT, details)


class PoolTimeoutError(PgMcpError):
    """No pooled connection could be acquired within the acquisition timeout.

    Raised as-is when a slot was free but opening the underlying connection
    did not finish in time.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.POOL_TIMEOUT,
    ) -> None:
        super().__init__(message, code, details)


class PoolExhaustedError(PoolTimeoutError):
    """Every pooled connection stayed leased for the whole acquisition timeout."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details, code=ErrorCode.POOL_EXHAUSTED)


class SessionNotFoundError(PgMcpError):
    """A message referenced a session that is unknown or already closed."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            "Session not found", ErrorCode.SESSION_NOT_FOUND, {"session_id": session_id}
        )
