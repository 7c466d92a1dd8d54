"""MCP client over any client-role connection.

Every call sends one request with a fresh id and blocks until the matching
response arrives or the call's timeout expires. A timeout raises
:class:`RequestTimeoutError`; an error object from the server raises
:class:`RemoteError`.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any

from mcp_ai_server.plugins.base import ToolDefinition
from mcp_ai_server.protocol.jsonrpc import ErrorObject, Message
from mcp_ai_server.protocol.lifecycle import MCP_PROTOCOL_VERSION
from mcp_ai_server.transport.connection import Connection

logger = logging.getLogger(__name__)

METADATA_TIMEOUT = 5.0
TOOL_CALL_TIMEOUT = 10.0
AI_TOOL_CALL_TIMEOUT = 120.0
SHUTDOWN_TIMEOUT = 2.0

AI_TOOL_PREFIX = "ai_"


class ClientError(Exception):
    """Base class for client errors."""

    pass


class RequestTimeoutError(ClientError):
    """Raised when no response arrives before the timeout."""

    def __init__(self, method: str, request_id: int, timeout: float) -> None:
        super().__init__(f"No response to {method} (id={request_id}) within {timeout:g}s")
        self.method = method
        self.request_id = request_id
        self.timeout = timeout


class RemoteError(ClientError):
    """Raised when the server answers with an error object."""

    def __init__(self, method: str, error: ErrorObject) -> None:
        detail = f": {error.data}" if error.data is not None else ""
        super().__init__(f"{method} failed ({error.code}) {error.message}{detail}")
        self.method = method
        self.error = error

    @property
    def code(self) -> int:
        return self.error.code


class MCPClient:
    """Issues MCP requests and waits for their responses.

    The connection must already be started; the client never starts or stops
    it. Request ids come from a counter that is never reset, so an id is not
    reused for the lifetime of the client.
    """

    def __init__(
        self,
        connection: Connection,
        client_name: str = "mcp-ai-client",
        client_version: str = "1.0.0",
    ) -> None:
        """Initialize the client.

        Args:
            connection: Started client-role connection.
            client_name: Name announced in ``initialize``.
            client_version: Version announced in ``initialize``.
        """
        self._connection = connection
        self._client_info = {"name": client_name, "version": client_version}
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()
        self.server_info: dict[str, Any] | None = None
        self.server_capabilities: dict[str, Any] = {}

    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def request(
        self,
        method: str,
        params: Any | None = None,
        timeout: float = METADATA_TIMEOUT,
    ) -> Any:
        """Send a request and return its result.

        Args:
            method: Method name.
            params: Method parameters.
            timeout: Seconds to wait for the response.

        Returns:
            The ``result`` member of the response.

        Raises:
            RequestTimeoutError: If no response arrived in time.
            RemoteError: If the server returned an error.
            TransportError: If the request could not be sent.
        """
        request_id = self._next_id()
        self._connection.send_message(Message.request(request_id, method, params))

        response = self._connection.wait_for_response(request_id, timeout)
        if response is None:
            logger.warning("Timed out waiting for %s (id=%d)", method, request_id)
            raise RequestTimeoutError(method, request_id, timeout)
        if response.error is not None:
            raise RemoteError(method, response.error)
        return response.result

    def notify(self, method: str, params: Any | None = None) -> None:
        """Send a notification."""
        self._connection.send_message(Message.notification(method, params))

    def initialize(self, timeout: float = METADATA_TIMEOUT) -> dict[str, Any]:
        """Perform the initialize handshake.

        Returns:
            The server's initialize result.
        """
        result = self.request(
            "initialize",
            {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": self._client_info,
            },
            timeout=timeout,
        )
        self.server_info = result.get("serverInfo")
        self.server_capabilities = result.get("capabilities") or {}
        self.notify("notifications/initialized")
        return result

    def list_tools(self, timeout: float = METADATA_TIMEOUT) -> list[ToolDefinition]:
        """Return the server's tools."""
        result = self.request("tools/list", timeout=timeout)
        return [ToolDefinition.from_dict(tool) for tool in result.get("tools", [])]

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Call a tool.

        Args:
            name: Tool name.
            arguments: Tool arguments.
            timeout: Seconds to wait; defaults to a longer wait for
                model-backed ``ai_*`` tools than for the others.

        Returns:
            The tool result (``content`` and ``isError``).
        """
        if timeout is None:
            is_ai_tool = name.startswith(AI_TOOL_PREFIX)
            timeout = AI_TOOL_CALL_TIMEOUT if is_ai_tool else TOOL_CALL_TIMEOUT
        return self.request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            timeout=timeout,
        )

    def read_resource(self, uri: str, timeout: float = METADATA_TIMEOUT) -> dict[str, Any]:
        """Read a resource by URI."""
        return self.request("resources/read", {"uri": uri}, timeout=timeout)

    def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Ask the server to end the session."""
        self.request("shutdown", timeout=timeout)


def result_text(result: dict[str, Any]) -> str:
    """Join the text items of a tool result."""
    parts = [
        item.get("text", "")
        for item in result.get("content", [])
        if isinstance(item, dict) and item.get("type") == "text"
    ]
    return "\n".join(parts)
