"""Session and request context propagation for PostgreSQL MCP Server.

Every streaming session and every tool call gets an identifier stored in a
context variable. Tasks spawned while serving a session inherit the values,
so log records emitted deep inside a handler can be correlated with the
stream they belong to.
"""

import contextvars
import logging
import uuid
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

_session_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_id", default=None
)
_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)


def generate_request_id() -> str:
    """Generate a unique request ID.

    Returns:
        UUID4-based request ID as a string.
    """
    return str(uuid.uuid4())


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    return _request_id_var.get()


def get_session_id() -> str | None:
    """Get the current session ID from context."""
    return _session_id_var.get()


@contextmanager
def session_context(session_id: str) -> Iterator[str]:
    """Bind a session ID for the duration of the block.

    Args:
        session_id: Identifier of the streaming session being served.

    Yields:
        The session ID.
    """
    token = _session_id_var.set(session_id)
    try:
        yield session_id
    finally:
        _session_id_var.reset(token)


@asynccontextmanager
async def request_context(request_id: str | None = None) -> AsyncIterator[str]:
    """Context manager for request tracing.

    Creates a new request context with a unique (or provided) request ID
    that will be propagated through all async operations.

    Args:
        request_id: Optional request ID. If not provided, a new one is generated.

    Yields:
        The request ID for this context.

    Example:
        >>> async with request_context() as req_id:
        ...     logger.info("Dispatching tool")
        ...     await some_operation()
    """
    if request_id is None:
        request_id = generate_request_id()

    token = _request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        _request_id_var.reset(token)


class ContextFilter(logging.Filter):
    """Stamp log records with the current session and request IDs."""

    def filter(self, record: logging.LogRecord) -> bool:
        session_id = _session_id_var.get()
        if session_id is not None and not hasattr(record, "session_id"):
            record.session_id = session_id
        request_id = _request_id_var.get()
        if request_id is not None and not hasattr(record, "request_id"):
            record.request_id = request_id
        return True
