"""Configuration management for PostgreSQL MCP Server.

This module defines all configuration settings using Pydantic for validation
and type safety. Configuration is loaded from environment variables with
sensible defaults.
"""

from ssl import CERT_NONE, SSLContext, create_default_context
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """PostgreSQL database connection configuration."""

    model_config = SettingsConfigDict(env_prefix="PG_", env_file=".env", extra="ignore")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    database: str = Field(default="postgres", description="Database name")
    user: str = Field(default="postgres", description="Database user")
    password: SecretStr = Field(default=SecretStr(""), description="Database password")

    # Transport security
    ssl: bool = Field(default=False, description="Encrypt the connection with TLS")
    ssl_verify: bool = Field(
        default=False,
        description="Verify the server certificate and host name when TLS is enabled",
    )

    # Connection pool settings
    min_pool_size: int = Field(
        default=0, ge=0, le=100, description="Connections opened eagerly at startup"
    )
    max_pool_size: int = Field(default=10, ge=1, le=100, description="Maximum pool size")
    idle_timeout: float = Field(
        default=30.0, ge=0.0, le=3600.0, description="Seconds before an idle connection is closed"
    )
    acquire_timeout: float = Field(
        default=5.0, ge=0.1, le=300.0, description="Pool acquire timeout in seconds"
    )
    command_timeout: float | None = Field(
        default=None, ge=1.0, le=3600.0, description="Statement timeout in seconds (None = no limit)"
    )
    close_timeout: float = Field(
        default=10.0, ge=0.1, le=300.0, description="Graceful pool shutdown timeout in seconds"
    )

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "DatabaseConfig":
        """Ensure the eager pool size does not exceed the maximum."""
        if self.min_pool_size > self.max_pool_size:
            raise ValueError("min_pool_size must not exceed max_pool_size")
        return self

    @property
    def safe_dsn(self) -> str:
        """Build DSN with masked password for logging."""
        return f"postgresql://{self.user}:***@{self.host}:{self.port}/{self.database}"

    def ssl_context(self) -> SSLContext | bool:
        """Build the ``ssl`` argument for asyncpg.

        Returns:
            False for plain connections, otherwise an SSL context. Without
            ``ssl_verify`` the context encrypts but accepts any certificate.
        """
        if not self.ssl:
            return False

        context = create_default_context()
        if not self.ssl_verify:
            context.check_hostname = False
            context.verify_mode = CERT_NONE
        return context


class ServerConfig(BaseSettings):
    """HTTP server and transport configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_", env_file=".env", extra="ignore", populate_by_name=True
    )

    name: str = Field(default="pg-mcp-server", description="Server name announced to clients")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("SERVER_PORT", "PORT"),
        description="Bind port",
    )
    sse_path: str = Field(default="/sse", description="Path clients open the event stream on")
    messages_path: str = Field(
        default="/messages", description="Path clients post protocol messages to"
    )


class ObservabilityConfig(BaseSettings):
    """Observability and monitoring configuration."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_", env_file=".env", extra="ignore")

    metrics_enabled: bool = Field(default=False, description="Enable Prometheus metrics")
    metrics_port: int = Field(
        default=9090, ge=1024, le=65535, description="Metrics HTTP server port"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: Literal["json", "text"] = Field(default="text", description="Log format")


class Settings(BaseSettings):
    """Main application settings aggregating all config sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Nested configurations
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings: The global settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset global settings instance. Useful for testing."""
    global _settings
    _settings = None
