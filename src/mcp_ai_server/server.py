"""MCP server composition root.

Integrates configuration, security, plugins and transports into a complete
server. One :class:`MCPServer` owns the tool registry; every connection
gets its own :class:`Session` on top of it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TextIO

from mcp_ai_server.config import AppConfig
from mcp_ai_server.plugins.ai import AIToolsPlugin
from mcp_ai_server.plugins.base import PluginBase
from mcp_ai_server.plugins.data import DataToolsPlugin
from mcp_ai_server.plugins.database import DatabaseToolsPlugin
from mcp_ai_server.plugins.dispatcher import ToolDispatcher
from mcp_ai_server.plugins.network import NetworkToolsPlugin
from mcp_ai_server.plugins.system import SystemToolsPlugin
from mcp_ai_server.protocol.lifecycle import LifecycleManager
from mcp_ai_server.protocol.session import Session
from mcp_ai_server.protocol.tools import ToolsHandler
from mcp_ai_server.security.audit import AuditLogger
from mcp_ai_server.security.firewall import NetworkFirewall
from mcp_ai_server.security.validator import InputValidator
from mcp_ai_server.transport.stdio import StdioTransport
from mcp_ai_server.transport.websocket import WebSocketServer

logger = logging.getLogger(__name__)


class MCPServer:
    """MCP server implementation.

    Provides:
    - a shared tool registry fed by plugins
    - per-connection sessions (lifecycle, tools, resources)
    - stdio and WebSocket serving
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Server configuration; built-in defaults when omitted.
        """
        self._config = config or AppConfig()
        policy = self._config.security

        self._validator = InputValidator(policy)
        self._firewall = NetworkFirewall(policy)
        self._dispatcher = ToolDispatcher(
            validator=self._validator if policy.validate_arguments else None
        )

        self._audit_logger: AuditLogger | None = None
        if policy.audit_log_file:
            self._audit_logger = AuditLogger(Path(policy.audit_log_file))

        self._tools_handler = ToolsHandler(self._dispatcher, audit_logger=self._audit_logger)

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    def register_plugin(self, plugin: PluginBase) -> None:
        """Register a plugin.

        Args:
            plugin: Plugin to register. A tool whose name is already taken
                replaces the earlier registration.
        """
        self._dispatcher.register_plugin(plugin)

    def register_default_plugins(self) -> None:
        """Register the built-in system, network, data, database and AI tools."""
        policy = self._config.security
        database = DatabaseToolsPlugin(self._config.database, validator=self._validator)

        self.register_plugin(SystemToolsPlugin(self._validator))
        self.register_plugin(
            NetworkToolsPlugin(
                self._firewall,
                max_response_size=policy.max_response_size,
                max_command_output=policy.max_command_output,
                command_timeout=policy.tool_timeout,
            )
        )
        self.register_plugin(DataToolsPlugin())
        self.register_plugin(database)
        self.register_plugin(AIToolsPlugin(self._config.ai, database=database))

        logger.info("Registered %d tools", len(self._dispatcher.tool_names()))

    def list_tools(self) -> list[dict[str, Any]]:
        """List all registered tools.

        Returns:
            List of tool definitions.
        """
        return self._dispatcher.list_tools()

    def create_session(self, name: str = "stdio") -> Session:
        """Create a fresh, uninitialized session bound to this server's tools."""
        server = self._config.server
        lifecycle = LifecycleManager(server_info={"name": server.name, "version": server.version})
        return Session(self._tools_handler, lifecycle=lifecycle, name=name)

    def serve_stdio(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Serve one session over stdin/stdout until end of input.

        A ``shutdown`` request resets the session but keeps reading, so the
        peer may initialize again.
        """
        transport = StdioTransport(stdin, stdout)
        session = self.create_session("stdio")
        logger.info("Serving MCP over stdio")

        while True:
            raw = transport.read_message()
            if raw is None:
                logger.info("EOF received, shutting down")
                break

            response = session.handle_raw(raw)
            if response is not None:
                transport.write_message(response)

    def create_websocket_server(
        self, host: str | None = None, port: int | None = None
    ) -> WebSocketServer:
        """Build a WebSocket server that opens one session per connection.

        Args:
            host: Interface to bind; defaults to the configured host.
            port: Port to bind; defaults to the configured port.
        """
        server = self._config.server
        return WebSocketServer(
            self.create_session,
            host=server.host if host is None else host,
            port=server.port if port is None else port,
        )

    def close(self) -> None:
        """Close the server and clean up resources."""
        self._dispatcher.cleanup()
        if self._audit_logger is not None:
            self._audit_logger.close()

    def __enter__(self) -> MCPServer:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
