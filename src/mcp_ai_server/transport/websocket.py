"""WebSocket transport: multi-client server and client connection.

The server gives every upgraded connection its own thread and its own
:class:`~mcp_ai_server.protocol.session.Session`; all sessions share the
server's tool dispatcher. Plain HTTP requests are answered with JSON: a
status document on ``/health`` and an explanatory 400 everywhere else.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from http import HTTPStatus
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect
from websockets.sync.server import Server, ServerConnection, serve

from mcp_ai_server.protocol.jsonrpc import Message
from mcp_ai_server.transport.connection import (
    DEFAULT_QUEUE_SIZE,
    MAX_INBOUND_SIZE,
    Connection,
    ConnectionStateError,
    TransportError,
)

if TYPE_CHECKING:
    from websockets.http11 import Request, Response

    from mcp_ai_server.protocol.session import Session

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8081
SERVICE_NAME = "mcp-ai-websocket"
HEALTH_PATH = "/health"


def _format_peer(address: Any) -> str:
    if isinstance(address, tuple) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return str(address)


class WebSocketServer:
    """Serves MCP sessions over WebSocket.

    Example:

        server = WebSocketServer(mcp_server.create_session, port=8081)
        server.start()
        ...
        server.stop()
    """

    def __init__(
        self,
        session_factory: Callable[[str], Session],
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        service_name: str = SERVICE_NAME,
    ) -> None:
        """Initialize the server.

        Args:
            session_factory: Creates a session for a new connection; receives
                the peer address as a label.
            host: Interface to bind.
            port: TCP port to bind; 0 picks a free port.
            service_name: Identity reported by the health endpoint.
        """
        self._session_factory = session_factory
        self._host = host
        self._port = port
        self._service_name = service_name
        self._connections: set[ServerConnection] = set()
        self._lock = threading.Lock()
        self._server: Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        """The bound port once started, else the configured port."""
        if self._server is not None:
            return int(self._server.socket.getsockname()[1])
        return self._port

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Bind the listening socket and serve on a background thread.

        Raises:
            RuntimeError: If the server was already started.
            OSError: If the port cannot be bound.
        """
        if self._server is not None:
            raise RuntimeError("WebSocket server already started")

        self._server = serve(
            self._handle_connection,
            self._host,
            self._port,
            process_request=self._process_request,
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="websocket-server",
            daemon=True,
        )
        self._thread.start()
        logger.info("WebSocket server listening on ws://%s:%d/", self._host, self.port)

    def serve_forever(self) -> None:
        """Start the server and block until it is stopped."""
        if self._server is None:
            self.start()
        thread = self._thread
        if thread is None:
            raise RuntimeError("WebSocket server failed to start")
        thread.join()

    def stop(self) -> None:
        """Close every connection, then stop the listener and wait for it."""
        with self._lock:
            connections = list(self._connections)
            self._connections.clear()
        for connection in connections:
            connection.close()

        if self._server is not None:
            self._server.shutdown()
        if self._thread is not None:
            self._thread.join()
        self._server = None
        self._thread = None
        logger.info("WebSocket server stopped (%d connections closed)", len(connections))

    def _health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": self._service_name,
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "connections": self.connection_count,
        }

    def _json_response(
        self, connection: ServerConnection, status: HTTPStatus, body: dict[str, Any]
    ) -> Response:
        response = connection.respond(status, json.dumps(body) + "\n")
        del response.headers["Content-Type"]
        response.headers["Content-Type"] = "application/json"
        return response

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        path = urlparse(request.path).path
        if path == HEALTH_PATH:
            return self._json_response(connection, HTTPStatus.OK, self._health())

        if request.headers.get("Upgrade", "").lower() != "websocket":
            logger.debug("Rejected non-WebSocket request for %s", request.path)
            host = "localhost" if self._host in ("", "0.0.0.0", "::") else self._host
            return self._json_response(
                connection,
                HTTPStatus.BAD_REQUEST,
                {
                    "error": "This endpoint only accepts WebSocket connections",
                    "usage": "Connect with a WebSocket client and send JSON-RPC 2.0 messages",
                    "example": f"ws://{host}:{self.port}/",
                },
            )

        return None

    def _handle_connection(self, connection: ServerConnection) -> None:
        peer = _format_peer(connection.remote_address)
        session = self._session_factory(peer)

        with self._lock:
            self._connections.add(connection)
            count = len(self._connections)
        logger.info("Client connected: %s (%d open)", peer, count)

        try:
            for frame in connection:
                response = session.handle_raw(frame)
                if response is not None:
                    connection.send(response)
        except ConnectionClosed as e:
            logger.debug("Connection %s closed: %s", peer, e)
        finally:
            with self._lock:
                self._connections.discard(connection)
                count = len(self._connections)
            connection.close()
            logger.info("Client disconnected: %s (%d open)", peer, count)


class WebSocketConnection(Connection):
    """Client-side connection to a WebSocket MCP server."""

    def __init__(
        self,
        url: str,
        open_timeout: float = 10.0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        message_handler: Callable[[Message], None] | None = None,
    ) -> None:
        """Initialize the connection.

        Args:
            url: Server URL, e.g. ``ws://localhost:8081/``.
            open_timeout: Seconds allowed for the opening handshake.
            queue_size: Capacity of the inbound message queue.
            message_handler: Called for inbound requests and notifications.
        """
        super().__init__(queue_size=queue_size, message_handler=message_handler)
        self._url = url
        self._open_timeout = open_timeout
        self._ws: ClientConnection | None = None

    @property
    def url(self) -> str:
        return self._url

    def _open(self) -> None:
        try:
            self._ws = connect(
                self._url,
                open_timeout=self._open_timeout,
                max_size=MAX_INBOUND_SIZE,
            )
        except (OSError, InvalidHandshake, InvalidURI, TimeoutError) as e:
            raise TransportError(f"Cannot connect to {self._url}: {e}") from e

    def _close(self) -> None:
        if self._ws is not None:
            self._ws.close()

    def _socket(self) -> ClientConnection:
        if self._ws is None:
            raise ConnectionStateError(f"Not connected to {self._url}")
        return self._ws

    def _read_frames(self) -> Iterator[str]:
        ws = self._socket()
        try:
            for frame in ws:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                yield frame
        except ConnectionClosed as e:
            logger.debug("WebSocket closed: %s", e)

    def _write(self, data: str) -> None:
        self._socket().send(data)
