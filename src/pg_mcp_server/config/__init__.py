"""Configuration management module."""

from pg_mcp_server.config.settings import (
    DatabaseConfig,
    ObservabilityConfig,
    ServerConfig,
    Settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "DatabaseConfig",
    "ObservabilityConfig",
    "ServerConfig",
    "Settings",
    "get_settings",
    "reset_settings",
]
