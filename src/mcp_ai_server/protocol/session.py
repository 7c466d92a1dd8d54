"""Per-connection protocol session.

A :class:`Session` turns one inbound message into at most one outbound
message. Each transport connection owns exactly one session, so lifecycle
state is never shared between peers. Requests on a session are handled one
at a time in arrival order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from mcp_ai_server.protocol.jsonrpc import (
    INTERNAL_ERROR,
    METHOD_NOT_FOUND,
    JsonRpcError,
    Message,
    parse_message,
)
from mcp_ai_server.protocol.lifecycle import LifecycleManager
from mcp_ai_server.protocol.params import InitializeParams, ResourceReadParams, ToolCallParams
from mcp_ai_server.protocol.tools import ToolsHandler

logger = logging.getLogger(__name__)


class Session:
    """Protocol state machine for a single peer.

    Handles ``initialize``, ``tools/list``, ``tools/call``, ``resources/read``
    and ``shutdown``. Everything except ``initialize`` and ``shutdown``
    requires a completed handshake.
    """

    def __init__(
        self,
        tools: ToolsHandler,
        lifecycle: LifecycleManager | None = None,
        name: str = "session",
    ) -> None:
        """Initialize the session.

        Args:
            tools: Handler for tools/list and tools/call.
            lifecycle: Lifecycle state; a fresh manager is created if omitted.
            name: Label used in log records, e.g. the peer address.
        """
        self._tools = tools
        self._lifecycle = lifecycle or LifecycleManager()
        self._name = name
        self._handlers: dict[str, Callable[[Any], Any]] = {
            "initialize": self._handle_initialize,
            "tools/list": self._handle_tools_list,
            "tools/call": self._handle_tools_call,
            "resources/read": self._handle_resources_read,
            "shutdown": self._handle_shutdown,
        }

    @property
    def lifecycle(self) -> LifecycleManager:
        return self._lifecycle

    @property
    def is_initialized(self) -> bool:
        return self._lifecycle.is_initialized

    def handle_raw(self, raw: str | bytes) -> str | None:
        """Handle one serialized message.

        Args:
            raw: A single JSON-RPC message as received from the transport.

        Returns:
            Serialized response, or None when nothing should be sent back.
        """
        try:
            message = parse_message(raw)
        except JsonRpcError as e:
            logger.warning("[%s] Rejected malformed message: %s", self._name, e.message)
            return Message.error_response(None, e.code, e.message, e.data).to_json()

        response = self.handle_message(message)
        return response.to_json() if response is not None else None

    def handle_message(self, message: Message) -> Message | None:
        """Handle one decoded message.

        Args:
            message: The inbound message.

        Returns:
            The response to send, or None for notifications and responses.
        """
        try:
            message.validate()
        except JsonRpcError as e:
            return Message.error_response(message.id, e.code, e.message, e.data)

        if message.is_request():
            return self._handle_request(message)

        if message.is_notification():
            logger.debug("[%s] Notification received: %s", self._name, message.method)
            return None

        logger.debug("[%s] Ignoring unsolicited response id=%s", self._name, message.id)
        return None

    def _handle_request(self, request: Message) -> Message:
        handler = self._handlers.get(request.method or "")
        if handler is None:
            return Message.error_response(
                request.id,
                METHOD_NOT_FOUND,
                "Method not found",
                f"Unknown method: {request.method}",
            )

        try:
            result = handler(request.params)
        except JsonRpcError as e:
            return Message.error_response(request.id, e.code, e.message, e.data)
        except Exception:
            logger.exception("[%s] Unhandled error in %s", self._name, request.method)
            return Message.error_response(request.id, INTERNAL_ERROR, "Internal error")

        return Message.response(request.id, result)

    def _handle_initialize(self, params: Any) -> dict[str, Any]:
        result = self._lifecycle.handle_initialize(InitializeParams.from_params(params))
        client = self._lifecycle.client_info
        logger.info(
            "[%s] Initialized by %s %s",
            self._name,
            client.name if client else "unknown client",
            client.version if client else "",
        )
        return result

    def _handle_tools_list(self, params: Any) -> dict[str, Any]:
        self._lifecycle.require_initialized()
        return self._tools.handle_list().to_dict()

    def _handle_tools_call(self, params: Any) -> dict[str, Any]:
        self._lifecycle.require_initialized()
        return self._tools.handle_call(ToolCallParams.from_params(params))

    def _handle_resources_read(self, params: Any) -> dict[str, Any]:
        self._lifecycle.require_initialized()
        uri = ResourceReadParams.from_params(params).uri
        return {
            "contents": [{"type": "text", "text": f"Resource content for: {uri}"}],
            "mimeType": "text/plain",
        }

    def _handle_shutdown(self, params: Any) -> dict[str, Any]:
        self._lifecycle.handle_shutdown()
        logger.info("[%s] Session shut down", self._name)
        return {}
