"""Transports: stdio and WebSocket, server and client side."""

from mcp_ai_server.transport.connection import Connection, ConnectionStateError, TransportError
from mcp_ai_server.transport.pending import PendingResponses
from mcp_ai_server.transport.stdio import StdioConnection, StdioTransport
from mcp_ai_server.transport.websocket import WebSocketConnection, WebSocketServer

__all__ = [
    "Connection",
    "ConnectionStateError",
    "PendingResponses",
    "StdioConnection",
    "StdioTransport",
    "TransportError",
    "WebSocketConnection",
    "WebSocketServer",
]
