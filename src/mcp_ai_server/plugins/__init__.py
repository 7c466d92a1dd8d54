"""Tool plugins and the dispatcher that routes calls to them."""

from mcp_ai_server.plugins.base import PluginBase, ToolDefinition, ToolError, ToolResult
from mcp_ai_server.plugins.dispatcher import (
    InvalidToolArguments,
    ToolDispatcher,
    ToolExecutionError,
    ToolNotFoundError,
)

__all__ = [
    "InvalidToolArguments",
    "PluginBase",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolResult",
]
