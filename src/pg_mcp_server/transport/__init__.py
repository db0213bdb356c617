"""Session-oriented streaming transport."""

from pg_mcp_server.transport.sessions import Session, SessionRegistry, SessionState
from pg_mcp_server.transport.sse import ProtocolServer, SseTransport

__all__ = [
    "ProtocolServer",
    "Session",
    "SessionRegistry",
    "SessionState",
    "SseTransport",
]
