"""Tests for tools/list and tools/call handlers."""

import json
from pathlib import Path

import pytest

from mcp_ai_server.plugins.dispatcher import ToolDispatcher
from mcp_ai_server.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JsonRpcError,
)
from mcp_ai_server.protocol.params import ToolCallParams
from mcp_ai_server.protocol.tools import ToolsHandler, ToolsListResult
from mcp_ai_server.security.audit import AuditLogger


class TestToolsListResult:
    """Tests for ToolsListResult dataclass."""

    def test_to_dict(self):
        """Should wrap the tools in the MCP result shape."""
        tools = [{"name": "echo", "description": "Echo", "inputSchema": {}}]
        assert ToolsListResult(tools=tools).to_dict() == {"tools": tools}


class TestToolsHandler:
    """Tests for ToolsHandler."""

    def test_handle_list(self, dispatcher: ToolDispatcher):
        """Should list tools from the executor."""
        result = ToolsHandler(dispatcher).handle_list()
        assert {tool["name"] for tool in result.tools} >= {"echo", "add"}

    def test_handle_list_without_executor(self):
        """Should return an empty list when no executor is set."""
        assert ToolsHandler(None).handle_list().tools == []

    def test_handle_call_success(self, dispatcher: ToolDispatcher):
        """Should return the tool result as a dict."""
        result = ToolsHandler(dispatcher).handle_call(
            ToolCallParams(name="add", arguments={"a": 2, "b": 3})
        )
        assert result == {"content": [{"type": "text", "text": "5"}], "isError": False}

    def test_error_result_is_not_an_exception(self, dispatcher: ToolDispatcher):
        """Should pass error results through as ordinary results."""
        result = ToolsHandler(dispatcher).handle_call(ToolCallParams(name="soft_fail"))
        assert result["isError"] is True

    @pytest.mark.parametrize(
        ("params", "code", "message"),
        [
            (ToolCallParams(name="nope"), METHOD_NOT_FOUND, "Tool not found"),
            (ToolCallParams(name="echo"), INVALID_PARAMS, "Invalid tool arguments"),
            (ToolCallParams(name="refuse"), INTERNAL_ERROR, "Tool execution failed"),
            (ToolCallParams(name="crash"), INTERNAL_ERROR, "Tool execution failed"),
        ],
    )
    def test_dispatch_errors_map_to_codes(self, dispatcher, params, code, message):
        """Should translate dispatch failures into JSON-RPC errors."""
        with pytest.raises(JsonRpcError) as exc_info:
            ToolsHandler(dispatcher).handle_call(params)
        assert exc_info.value.code == code
        assert exc_info.value.message == message
        assert exc_info.value.data

    def test_call_without_executor(self):
        """Should fail with INTERNAL_ERROR when no executor is set."""
        with pytest.raises(JsonRpcError) as exc_info:
            ToolsHandler(None).handle_call(ToolCallParams(name="echo"))
        assert exc_info.value.code == INTERNAL_ERROR


class TestToolsHandlerAudit:
    """Tests for audit records written around tool calls."""

    def _events(self, path: Path) -> list[dict]:
        return [json.loads(line) for line in path.read_text().splitlines()]

    def test_success_is_audited(self, dispatcher: ToolDispatcher, tmp_path: Path):
        """Should log a request and a successful response with the same id."""
        log_path = tmp_path / "audit.log"
        with AuditLogger(log_path) as audit:
            ToolsHandler(dispatcher, audit_logger=audit).handle_call(
                ToolCallParams(name="echo", arguments={"message": "hi", "token": "t"})
            )

        request, response = self._events(log_path)
        assert request["tool_name"] == "echo"
        assert request["arguments"]["token"] == "[REDACTED]"
        assert response["request_id"] == request["request_id"]
        assert response["result_status"] == "success"

    def test_failures_are_audited(self, dispatcher: ToolDispatcher, tmp_path: Path):
        """Should record error results and raised failures differently."""
        log_path = tmp_path / "audit.log"
        with AuditLogger(log_path) as audit:
            handler = ToolsHandler(dispatcher, audit_logger=audit)
            handler.handle_call(ToolCallParams(name="soft_fail"))
            with pytest.raises(JsonRpcError):
                handler.handle_call(ToolCallParams(name="refuse"))

        responses = [e for e in self._events(log_path) if e["type"] == "response"]
        assert responses[0]["result_status"] == "error"
        assert responses[1]["result_status"] == "failure"
        assert responses[1]["error"] == "Refusing to do that"
