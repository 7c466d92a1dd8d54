"""Plugin base class and data structures.

Defines the interface every tool provider implements. A plugin declares its
tools once through :meth:`PluginBase.get_tools` and executes them by name
through :meth:`PluginBase.execute`.

Example:

    class EchoPlugin(PluginBase):
        @property
        def name(self) -> str:
            return "echo"

        @property
        def version(self) -> str:
            return "1.0.0"

        def get_tools(self) -> list[ToolDefinition]:
            return [
                ToolDefinition(
                    name="echo",
                    description="Echo a message back",
                    input_schema={
                        "type": "object",
                        "properties": {"message": {"type": "string"}},
                        "required": ["message"],
                    },
                )
            ]

        def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
            return ToolResult.text(require_str(arguments, "message"))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class ToolError(Exception):
    """Raised by a plugin when a tool cannot complete.

    The message is returned to the peer as diagnostic data, so it should
    describe the problem without leaking internals.
    """

    pass


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool provided by a plugin."""

    name: str
    description: str
    input_schema: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP tool format.

        Returns:
            Dictionary in MCP tools/list format.
        """
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolDefinition:
        """Build a definition from a tools/list entry."""
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            input_schema=data.get("inputSchema") or {},
        )


@dataclass
class ToolResult:
    """Result of a tool execution."""

    content: list[dict[str, Any]]
    is_error: bool = False

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> ToolResult:
        """Build a result holding a single text item."""
        return cls(content=[{"type": "text", "text": text}], is_error=is_error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP result format.

        Returns:
            Dictionary in MCP tools/call result format.
        """
        return {
            "content": self.content,
            "isError": self.is_error,
        }


class PluginBase(ABC):
    """Abstract base class for all plugins.

    Plugins must implement this interface to provide tools
    to the MCP server.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the plugin identifier."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Return the plugin version."""
        pass

    @abstractmethod
    def get_tools(self) -> list[ToolDefinition]:
        """Return tool definitions provided by this plugin.

        Returns:
            List of ToolDefinition objects.
        """
        pass

    @abstractmethod
    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool.

        Args:
            tool_name: Name of the tool to execute.
            arguments: Tool arguments.

        Returns:
            ToolResult with content and error status.

        Raises:
            ToolError: If the arguments are unusable or the tool fails.
        """
        pass

    def cleanup(self) -> None:
        """Release resources held by the plugin."""
        return None


def require_str(arguments: dict[str, Any], key: str) -> str:
    """Return a required string argument.

    Raises:
        ToolError: If the argument is missing or not a string.
    """
    value = arguments.get(key)
    if not isinstance(value, str):
        raise ToolError(f"'{key}' must be a string")
    return value


def optional_str(arguments: dict[str, Any], key: str, default: str | None = None) -> str | None:
    """Return an optional string argument, or ``default`` when absent."""
    value = arguments.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ToolError(f"'{key}' must be a string")
    return value


def optional_int(arguments: dict[str, Any], key: str, default: int) -> int:
    """Return an optional integer argument, or ``default`` when absent."""
    value = arguments.get(key)
    if value is None:
        return default
    # JSON numbers may arrive as floats, e.g. 10.0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ToolError(f"'{key}' must be an integer")
    return value


def optional_bool(arguments: dict[str, Any], key: str, default: bool = False) -> bool:
    """Return an optional boolean argument, or ``default`` when absent."""
    value = arguments.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ToolError(f"'{key}' must be a boolean")
    return value
