"""Tool dispatcher - routes tool calls to the appropriate plugin."""

from __future__ import annotations

import logging
from typing import Any

from mcp_ai_server.plugins.base import PluginBase, ToolDefinition, ToolError, ToolResult
from mcp_ai_server.security.validator import InputValidator, ValidationError

logger = logging.getLogger(__name__)


class ToolNotFoundError(Exception):
    """Raised when a tool is not found."""

    pass


class InvalidToolArguments(Exception):
    """Raised when tool arguments do not match the tool's input schema."""

    pass


class ToolExecutionError(Exception):
    """Raised when a tool fails to execute."""

    pass


class ToolDispatcher:
    """Routes tool calls to registered plugins.

    The name index is built while plugins are registered at startup and is
    only read afterwards. When two plugins declare a tool with the same name
    the plugin registered last owns it.
    """

    def __init__(self, validator: InputValidator | None = None) -> None:
        """Initialize the dispatcher.

        Args:
            validator: Optional validator used to check arguments against the
                tool's input schema before dispatch.
        """
        self._plugins: list[PluginBase] = []
        self._tools: dict[str, tuple[ToolDefinition, PluginBase]] = {}
        self._validator = validator

    def register_plugin(self, plugin: PluginBase) -> None:
        """Register a plugin and index its tools.

        Args:
            plugin: Plugin instance to register.
        """
        self._plugins.append(plugin)

        for tool in plugin.get_tools():
            previous = self._tools.pop(tool.name, None)
            if previous is not None:
                logger.warning(
                    "Tool %s from plugin %s replaced by plugin %s",
                    tool.name,
                    previous[1].name,
                    plugin.name,
                )
            self._tools[tool.name] = (tool, plugin)

        logger.debug("Registered plugin %s %s", plugin.name, plugin.version)

    def list_tools(self) -> list[dict[str, Any]]:
        """List all available tools in MCP format.

        Returns:
            List of tool definitions in MCP format, one per tool name.
        """
        return [tool.to_dict() for tool, _ in self._tools.values()]

    def tool_names(self) -> list[str]:
        """Return the names of all registered tools."""
        return list(self._tools)

    def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Call a tool by name.

        Args:
            tool_name: Name of the tool to call.
            arguments: Arguments to pass to the tool.

        Returns:
            ToolResult from the tool execution.

        Raises:
            ToolNotFoundError: If the tool is not registered.
            InvalidToolArguments: If the arguments fail schema validation.
            ToolExecutionError: If the tool fails to execute.
        """
        entry = self._tools.get(tool_name)
        if entry is None:
            raise ToolNotFoundError(f"Tool not found: {tool_name}")
        tool, plugin = entry

        if self._validator is not None:
            try:
                self._validator.validate_arguments(tool_name, tool.input_schema, arguments)
            except ValidationError as e:
                raise InvalidToolArguments(str(e)) from e

        try:
            return plugin.execute(tool_name, arguments)
        except ToolError as e:
            raise ToolExecutionError(str(e)) from e
        except Exception as e:
            logger.exception("Tool %s raised an unexpected error", tool_name)
            raise ToolExecutionError(f"Tool '{tool_name}' execution failed: {e}") from e

    def get_tool_schema(self, tool_name: str) -> dict[str, Any] | None:
        """Get the input schema for a tool.

        Args:
            tool_name: Name of the tool.

        Returns:
            Input schema dict or None if tool not found.
        """
        entry = self._tools.get(tool_name)
        if entry is None:
            return None
        return entry[0].input_schema

    def get_plugin(self, tool_name: str) -> PluginBase | None:
        """Return the plugin that owns a tool, or None."""
        entry = self._tools.get(tool_name)
        return entry[1] if entry else None

    def cleanup(self) -> None:
        """Clean up all registered plugins.

        Calls cleanup() on each plugin to release resources.
        Called by MCPServer.close() during shutdown.
        """
        for plugin in self._plugins:
            try:
                plugin.cleanup()
            except Exception:
                logger.exception("Cleanup failed for plugin %s", plugin.name)
