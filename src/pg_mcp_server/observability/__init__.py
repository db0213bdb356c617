"""Observability module for PostgreSQL MCP Server.

This module provides:
- Prometheus metrics collection
- Structured JSON logging
- Session and request context propagation

Example:
    >>> from pg_mcp_server.observability import configure_logging, metrics, session_context
    >>>
    >>> configure_logging(level="INFO", log_format="json")
    >>> metrics.start_metrics_server(9090)
    >>>
    >>> with session_context(session.id):
    ...     logger.info("Serving stream")
"""

from pg_mcp_server.observability.logging import (
    JSONFormatter,
    SensitiveDataFilter,
    TextFormatter,
    configure_logging,
)
from pg_mcp_server.observability.metrics import MetricsCollector, metrics
from pg_mcp_server.observability.tracing import (
    ContextFilter,
    generate_request_id,
    get_request_id,
    get_session_id,
    request_context,
    session_context,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "metrics",
    # Logging
    "configure_logging",
    "JSONFormatter",
    "TextFormatter",
    "SensitiveDataFilter",
    # Tracing
    "ContextFilter",
    "generate_request_id",
    "get_request_id",
    "get_session_id",
    "request_context",
    "session_context",
]
