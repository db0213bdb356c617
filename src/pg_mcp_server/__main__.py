"""Main entry point for PostgreSQL MCP Server.

This module provides the CLI entry point for running the MCP server over
the SSE transport with uvicorn.
"""

import uvicorn

from pg_mcp_server.config.settings import get_settings
from pg_mcp_server.observability.logging import configure_logging
from pg_mcp_server.observability.metrics import metrics
from pg_mcp_server.server import create_app


def main() -> None:
    """Main entry point for the PostgreSQL MCP Server.

    The server lifecycle is managed by the application lifespan, which
    opens the connection pool on startup and closes sessions and the pool
    on shutdown.

    Example:
        Run the server:
        >>> python -m pg_mcp_server

        Run with environment variables:
        >>> PG_HOST=localhost PG_DATABASE=mydb PORT=3000 python -m pg_mcp_server
    """
    settings = get_settings()
    configure_logging(
        level=settings.observability.log_level,
        log_format=settings.observability.log_format,
    )

    if settings.observability.metrics_enabled:
        metrics.start_metrics_server(settings.observability.metrics_port)

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
        timeout_graceful_shutdown=10,
    )


if __name__ == "__main__":
    main()
