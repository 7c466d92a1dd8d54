"""MCP session lifecycle.

Tracks whether a session has completed the ``initialize`` handshake. A
``shutdown`` returns the session to the uninitialized state so the same
connection can initialize again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcp_ai_server.protocol.jsonrpc import ProtocolError
from mcp_ai_server.protocol.params import ClientInfo, InitializeParams

MCP_PROTOCOL_VERSION = "2024-11-05"

SERVER_NAME = "mcp-ai-server"
SERVER_VERSION = "1.0.0"


def default_capabilities() -> dict[str, Any]:
    """Return the capabilities advertised to every client."""
    return {
        "tools": {"listChanged": True},
        "resources": {"listChanged": True},
    }


class LifecycleState(Enum):
    """Session lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


@dataclass
class LifecycleManager:
    """Per-session lifecycle state.

    Guards every method except ``initialize`` and ``shutdown`` behind a
    completed handshake.
    """

    server_info: dict[str, str] = field(
        default_factory=lambda: {"name": SERVER_NAME, "version": SERVER_VERSION}
    )
    capabilities: dict[str, Any] = field(default_factory=default_capabilities)
    state: LifecycleState = LifecycleState.UNINITIALIZED
    client_info: ClientInfo | None = None

    @property
    def is_initialized(self) -> bool:
        """Check if the handshake has completed."""
        return self.state == LifecycleState.INITIALIZED

    def require_initialized(self) -> None:
        """Assert that the session is initialized.

        Raises:
            ProtocolError: If ``initialize`` has not succeeded yet.
        """
        if self.state != LifecycleState.INITIALIZED:
            raise ProtocolError("Server not initialized")

    def handle_initialize(self, params: InitializeParams) -> dict[str, Any]:
        """Handle initialize request.

        Args:
            params: Decoded initialize parameters.

        Returns:
            Initialize response result.

        Raises:
            ProtocolError: If the session is already initialized.
        """
        if self.state == LifecycleState.INITIALIZED:
            raise ProtocolError("Server already initialized")

        if params.client_info is not None:
            self.client_info = params.client_info

        self.state = LifecycleState.INITIALIZED

        return {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": self.capabilities,
            "serverInfo": self.server_info,
        }

    def handle_shutdown(self) -> None:
        """Handle shutdown request; always succeeds."""
        self.state = LifecycleState.UNINITIALIZED
        self.client_info = None
