"""Database inspection tools exposed over MCP."""

from pg_mcp_server.tools.registry import ToolRegistry, ToolSpec

__all__ = ["ToolRegistry", "ToolSpec"]
