"""Streaming session bookkeeping.

A ``Session`` pairs one open event stream with the in-memory channels that
connect it to its protocol loop. The ``SessionRegistry`` maps session IDs to
sessions so that messages posted out-of-band reach the right loop.

State machine per session::

    OPEN --(stream closed | client gone | shutdown)--> CLOSED

Closing is idempotent. All registry mutations are synchronous, so they are
atomic under the single event loop.
"""

import logging
import time
import uuid
from collections.abc import AsyncIterator
from enum import StrEnum, auto

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.shared.message import SessionMessage

from pg_mcp_server.models.errors import SessionNotFoundError
from pg_mcp_server.observability.metrics import MetricsCollector, metrics

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    """Session lifecycle states."""

    OPEN = auto()
    CLOSED = auto()


class Session:
    """One client event stream and the channels of its protocol loop.

    Attributes:
        id: Opaque session identifier handed to the client.
        inbound: Messages posted by the client, read by the protocol loop.
        outbound: Messages written by the protocol loop, streamed to the client.
    """

    def __init__(self, session_id: str, buffer_size: int = 32) -> None:
        self.id = session_id
        self.state = SessionState.OPEN
        self.opened_at = time.monotonic()

        self._inbound_writer: MemoryObjectSendStream[SessionMessage | Exception]
        self.inbound: MemoryObjectReceiveStream[SessionMessage | Exception]
        self._inbound_writer, self.inbound = anyio.create_memory_object_stream(buffer_size)

        self.outbound: MemoryObjectSendStream[SessionMessage]
        self._outbound_reader: MemoryObjectReceiveStream[SessionMessage]
        self.outbound, self._outbound_reader = anyio.create_memory_object_stream(buffer_size)

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    async def deliver(self, message: SessionMessage | Exception) -> None:
        """Queue a client message for the protocol loop, preserving order.

        Raises:
            SessionNotFoundError: If the session closed before the message
                could be queued.
        """
        if not self.is_open:
            raise SessionNotFoundError(self.id)
        try:
            await self._inbound_writer.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise SessionNotFoundError(self.id) from e

    async def events(self) -> AsyncIterator[dict[str, str]]:
        """Yield outbound protocol messages as server-sent events."""
        try:
            async with self._outbound_reader:
                async for session_message in self._outbound_reader:
                    yield {
                        "event": "message",
                        "data": session_message.message.model_dump_json(
                            by_alias=True, exclude_none=True
                        ),
                    }
        except anyio.ClosedResourceError:
            # Session was closed while messages were still buffered
            return

    def close(self) -> None:
        """Close the session's channels. Safe to call more than once.

        Closing the inbound side ends the protocol loop; closing the outbound
        side ends the event stream and makes late responses fail fast instead
        of waiting for a reader that is gone.
        """
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self._inbound_writer.close()
        self.outbound.close()
        self._outbound_reader.close()


class SessionRegistry:
    """Mapping of session ID to open ``Session``.

    Example:
        >>> registry = SessionRegistry()
        >>> session = registry.open()
        >>> registry.get(session.id) is session
        True
        >>> registry.close(session.id)
        True
        >>> len(registry)
        0
    """

    def __init__(
        self,
        buffer_size: int = 32,
        metrics_collector: MetricsCollector | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            buffer_size: Per-direction message buffer of each new session.
            metrics_collector: Metrics sink; defaults to the process singleton.
        """
        self.buffer_size = buffer_size
        self.metrics = metrics_collector or metrics
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def ids(self) -> list[str]:
        return list(self._sessions)

    def open(self) -> Session:
        """Create and register a session under a fresh identifier.

        Returns:
            Session: The registered, open session.
        """
        session_id = uuid.uuid4().hex
        while session_id in self._sessions:
            session_id = uuid.uuid4().hex

        session = Session(session_id, buffer_size=self.buffer_size)
        self._sessions[session_id] = session

        self.metrics.increment_sessions_opened()
        self.metrics.set_sessions_active(len(self._sessions))
        logger.info("Session opened", extra={"session_id": session_id})
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        """Look up a session.

        Raises:
            SessionNotFoundError: If no open session has this ID.
        """
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def close(self, session_id: str) -> bool:
        """Deregister and close a session.

        Returns:
            bool: True if the session was registered, False if it was already gone.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        session.close()
        self.metrics.set_sessions_active(len(self._sessions))
        logger.info(
            "Session closed",
            extra={
                "session_id": session_id,
                "duration_seconds": round(time.monotonic() - session.opened_at, 3),
            },
        )
        return True

    def close_all(self) -> int:
        """Close every registered session (used on shutdown).

        Returns:
            int: Number of sessions closed.
        """
        closed = 0
        for session_id in list(self._sessions):
            if self.close(session_id):
                closed += 1
        return closed
