"""MCP protocol layer: JSON-RPC messages, session lifecycle and tool handling."""

from mcp_ai_server.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SERVER_ERROR,
    ErrorObject,
    JsonRpcError,
    Message,
    ProtocolError,
    parse_message,
)
from mcp_ai_server.protocol.lifecycle import (
    MCP_PROTOCOL_VERSION,
    LifecycleManager,
    LifecycleState,
)
from mcp_ai_server.protocol.session import Session
from mcp_ai_server.protocol.tools import ToolExecutor, ToolsHandler, ToolsListResult

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "MCP_PROTOCOL_VERSION",
    "PARSE_ERROR",
    "SERVER_ERROR",
    "ErrorObject",
    "JsonRpcError",
    "LifecycleManager",
    "LifecycleState",
    "Message",
    "ProtocolError",
    "Session",
    "ToolExecutor",
    "ToolsHandler",
    "ToolsListResult",
    "parse_message",
]
