"""Server-Sent Events transport for MCP sessions.

Clients open ``GET /sse`` and receive an ``endpoint`` event carrying the URI
to post their JSON-RPC messages to (``/messages?sessionId=<id>``). Every
protocol message the server produces for that client is pushed back on the
same stream as a ``message`` event.
"""

import logging
from typing import Any, Protocol

import anyio
import pydantic
from mcp import types
from mcp.shared.message import SessionMessage
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from pg_mcp_server.models.errors import SessionNotFoundError
from pg_mcp_server.observability.tracing import session_context
from pg_mcp_server.transport.sessions import Session, SessionRegistry

logger = logging.getLogger(__name__)


class ProtocolServer(Protocol):
    """The part of ``mcp.server.lowlevel.Server`` the transport drives."""

    async def run(self, read_stream: Any, write_stream: Any, initialization_options: Any) -> None: ...

    def create_initialization_options(self) -> Any: ...


class SseTransport:
    """Binds event streams to sessions and routes posted messages to them.

    An instance is itself the ASGI app of the stream route, so it receives the
    raw ``scope``/``receive``/``send`` it needs to keep the response open
    while the session's protocol loop runs.

    Example:
        >>> transport = SseTransport(server, SessionRegistry())
        >>> app = Starlette(routes=transport.routes("/sse"))
    """

    def __init__(
        self,
        server: ProtocolServer,
        registry: SessionRegistry,
        messages_path: str = "/messages",
        ping_interval: int = 15,
    ) -> None:
        """Initialize the transport.

        Args:
            server: MCP protocol server run once per session.
            registry: Session registry shared with the message route.
            messages_path: Path of the message route announced to clients.
            ping_interval: Seconds between keep-alive comments on idle streams.
        """
        self.server = server
        self.registry = registry
        self.messages_path = messages_path
        self.ping_interval = ping_interval

    def routes(self, sse_path: str = "/sse") -> list[Route]:
        return [
            Route(sse_path, endpoint=self, methods=["GET"]),
            Route(self.messages_path, endpoint=self.handle_post_message, methods=["POST"]),
        ]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Serve one event stream for its whole lifetime.

        The session is registered before the protocol loop starts and
        deregistered on every exit path: client disconnect, network failure,
        protocol loop exit or server shutdown.
        """
        session = self.registry.open()
        endpoint_uri = f"{scope.get('root_path', '')}{self.messages_path}?sessionId={session.id}"

        with session_context(session.id):
            try:
                async with anyio.create_task_group() as tg:
                    tg.start_soon(self._stream_events, session, endpoint_uri, scope, receive, send)
                    try:
                        await self.server.run(
                            session.inbound,
                            session.outbound,
                            self.server.create_initialization_options(),
                        )
                    except* (anyio.ClosedResourceError, anyio.BrokenResourceError):
                        logger.debug("Responses still in flight were dropped with the stream")
                    # Protocol loop is done; end the event stream with it
                    session.close()
            finally:
                self.registry.close(session.id)

    async def _stream_events(
        self,
        session: Session,
        endpoint_uri: str,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        async def event_source() -> Any:
            yield {"event": "endpoint", "data": endpoint_uri}
            async for event in session.events():
                yield event

        response = EventSourceResponse(event_source(), ping=self.ping_interval)
        try:
            await response(scope, receive, send)
        finally:
            logger.info("Event stream ended")
            self.registry.close(session.id)

    async def handle_post_message(self, request: Request) -> Response:
        """Route a posted JSON-RPC message to its session.

        Returns:
            Response: 202 when queued; 400 for a missing ``sessionId`` or a
            malformed body; 404 when the session is unknown or already closed.
        """
        session_id = request.query_params.get("sessionId")
        if not session_id:
            return JSONResponse({"error": "Missing sessionId query parameter"}, status_code=400)

        try:
            session = self.registry.require(session_id)
        except SessionNotFoundError as e:
            logger.info("Message posted to unknown session", extra={"session_id": session_id})
            return JSONResponse({"error": e.message}, status_code=404)

        body = await request.body()
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except pydantic.ValidationError as e:
            logger.warning(
                "Could not parse posted message",
                extra={"session_id": session_id, "errors": e.error_count()},
            )
            return JSONResponse({"error": "Could not parse message"}, status_code=400)

        try:
            await session.deliver(SessionMessage(message))
        except SessionNotFoundError as e:
            return JSONResponse({"error": e.message}, status_code=404)

        return Response("Accepted", status_code=202)
