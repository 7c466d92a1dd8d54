"""Client side: request/response correlation and the interactive console."""

from mcp_ai_server.client.client import (
    ClientError,
    MCPClient,
    RemoteError,
    RequestTimeoutError,
    result_text,
)

__all__ = [
    "ClientError",
    "MCPClient",
    "RemoteError",
    "RequestTimeoutError",
    "result_text",
]
