"""Shared fixtures: small in-memory plugins and a ready-made session."""

from typing import Any

import pytest

from mcp_ai_server.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolError,
    ToolResult,
    require_str,
)
from mcp_ai_server.plugins.dispatcher import ToolDispatcher
from mcp_ai_server.protocol.jsonrpc import Message
from mcp_ai_server.protocol.session import Session
from mcp_ai_server.protocol.tools import ToolsHandler
from mcp_ai_server.security.policy import SecurityPolicy
from mcp_ai_server.security.validator import InputValidator


class EchoPlugin(PluginBase):
    """Echo and arithmetic tools."""

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
                description="Echoes the input",
                input_schema={
                    "type": "object",
                    "properties": {"message": {"type": "string"}},
                    "required": ["message"],
                },
            ),
            ToolDefinition(
                name="add",
                description="Adds two numbers",
                input_schema={
                    "type": "object",
                    "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
                    "required": ["a", "b"],
                },
            ),
        ]

    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        if tool_name == "echo":
            return ToolResult.text(require_str(arguments, "message"))
        return ToolResult.text(str(arguments["a"] + arguments["b"]))


class FailingPlugin(PluginBase):
    """Tools that fail in each of the ways a plugin can."""

    def __init__(self) -> None:
        self.cleaned_up = False

    @property
    def name(self) -> str:
        return "failing"

    @property
    def version(self) -> str:
        return "0.1.0"

    def get_tools(self) -> list[ToolDefinition]:
        return [
            ToolDefinition("crash", "Raises an unexpected exception", {"type": "object"}),
            ToolDefinition("refuse", "Raises a ToolError", {"type": "object"}),
            ToolDefinition("soft_fail", "Returns an error result", {"type": "object"}),
        ]

    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        if tool_name == "crash":
            raise RuntimeError("Intentional crash for testing")
        if tool_name == "refuse":
            raise ToolError("Refusing to do that")
        return ToolResult.text("Something went wrong", is_error=True)

    def cleanup(self) -> None:
        self.cleaned_up = True


@pytest.fixture
def echo_plugin() -> EchoPlugin:
    return EchoPlugin()


@pytest.fixture
def failing_plugin() -> FailingPlugin:
    return FailingPlugin()


@pytest.fixture
def dispatcher(echo_plugin: EchoPlugin, failing_plugin: FailingPlugin) -> ToolDispatcher:
    """A dispatcher with schema validation and both test plugins."""
    dispatcher = ToolDispatcher(validator=InputValidator(SecurityPolicy()))
    dispatcher.register_plugin(echo_plugin)
    dispatcher.register_plugin(failing_plugin)
    return dispatcher


@pytest.fixture
def session(dispatcher: ToolDispatcher) -> Session:
    """An uninitialized session over the test dispatcher."""
    return Session(ToolsHandler(dispatcher), name="test")


@pytest.fixture
def initialized_session(session: Session) -> Session:
    """A session that has completed the initialize handshake."""
    response = session.handle_message(
        Message.request(0, "initialize", {"clientInfo": {"name": "pytest", "version": "1"}})
    )
    assert response is not None and response.error is None
    return session
