"""Prometheus metrics collector for PostgreSQL MCP Server.

This module implements metrics collection using prometheus_client, tracking
tool calls, database statements, pool pressure and streaming sessions.
"""

from prometheus_client import Counter, Gauge, Histogram, start_http_server


class MetricsCollector:
    """Centralized metrics collector using Prometheus client.

    This class provides singleton access to all application metrics.

    Metrics Categories:
    - Tool metrics: Call counts and durations per tool
    - Database metrics: Statement duration, leased connections, acquire failures
    - Session metrics: Open streams and total streams opened

    Example:
        >>> metrics = MetricsCollector()
        >>> metrics.increment_tool_call(tool="list_tables", status="success")
        >>> with metrics.db_query_duration.time():
        ...     await conn.fetch("SELECT 1")
    """

    _instance: "MetricsCollector | None" = None

    def __new__(cls) -> "MetricsCollector":
        """Ensure singleton instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialize_metrics()
        return cls._instance

    def _initialize_metrics(self) -> None:
        """Initialize all Prometheus metrics."""
        # Tool Metrics
        self.tool_calls: Counter = Counter(
            "pg_mcp_tool_calls_total",
            "Total number of tool invocations",
            labelnames=["tool", "status"],
        )

        self.tool_duration: Histogram = Histogram(
            "pg_mcp_tool_duration_seconds",
            "Tool invocation duration in seconds",
            labelnames=["tool"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
        )

        # Database Metrics
        self.db_query_duration: Histogram = Histogram(
            "pg_mcp_db_query_duration_seconds",
            "Database statement execution duration in seconds",
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0),
        )

        self.db_connections_leased: Gauge = Gauge(
            "pg_mcp_db_connections_leased",
            "Number of pooled connections currently leased",
        )

        self.pool_acquire_failures: Counter = Counter(
            "pg_mcp_pool_acquire_failures_total",
            "Total number of failed pool acquisitions",
            labelnames=["reason"],
        )

        # Session Metrics
        self.sessions_active: Gauge = Gauge(
            "pg_mcp_sessions_active",
            "Number of open streaming sessions",
        )

        self.sessions_opened: Counter = Counter(
            "pg_mcp_sessions_opened_total",
            "Total number of streaming sessions opened",
        )

    def start_metrics_server(self, port: int) -> None:
        """Start the Prometheus metrics HTTP server.

        Args:
            port: Port number to listen on for metrics scraping.
        """
        start_http_server(port)

    def increment_tool_call(self, tool: str, status: str) -> None:
        """Increment tool call counter.

        Args:
            tool: Tool name.
            status: Outcome (success, error, validation_failed, ...).
        """
        self.tool_calls.labels(tool=tool, status=status).inc()

    def observe_tool_duration(self, tool: str, duration: float) -> None:
        self.tool_duration.labels(tool=tool).observe(duration)

    def set_db_connections_leased(self, count: int) -> None:
        self.db_connections_leased.set(count)

    def increment_pool_acquire_failure(self, reason: str) -> None:
        """Increment pool acquisition failure counter.

        Args:
            reason: Failure reason (exhausted, timeout, connect_error).
        """
        self.pool_acquire_failures.labels(reason=reason).inc()

    def set_sessions_active(self, count: int) -> None:
        self.sessions_active.set(count)

    def increment_sessions_opened(self) -> None:
        self.sessions_opened.inc()


# Singleton instance
metrics = MetricsCollector()
