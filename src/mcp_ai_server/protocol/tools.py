"""MCP tools/list and tools/call handlers.

Routes tool requests to a :class:`ToolExecutor` and turns dispatch failures
into JSON-RPC errors. The handler never inspects which tools exist; the
executor is the only source of truth for that.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from mcp_ai_server.plugins.dispatcher import (
    InvalidToolArguments,
    ToolExecutionError,
    ToolNotFoundError,
)
from mcp_ai_server.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JsonRpcError,
)

if TYPE_CHECKING:
    from mcp_ai_server.plugins.base import ToolResult
    from mcp_ai_server.protocol.params import ToolCallParams
    from mcp_ai_server.security.audit import AuditLogger

logger = logging.getLogger(__name__)


class ToolExecutor(Protocol):
    """Anything that can list and execute tools."""

    def list_tools(self) -> list[dict[str, Any]]: ...

    def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult: ...


@dataclass
class ToolsListResult:
    """Result of tools/list request."""

    tools: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP result format.

        Returns:
            Dictionary in MCP tools/list result format.
        """
        return {"tools": self.tools}


class ToolsHandler:
    """Handles tools/list and tools/call MCP requests."""

    def __init__(
        self,
        executor: ToolExecutor | None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            executor: Tool executor, usually the plugin dispatcher.
            audit_logger: Optional audit trail for tool calls.
        """
        self._executor = executor
        self._audit = audit_logger

    def handle_list(self) -> ToolsListResult:
        """Handle tools/list request.

        Returns:
            ToolsListResult with all available tools.
        """
        if self._executor is None:
            return ToolsListResult(tools=[])
        return ToolsListResult(tools=self._executor.list_tools())

    def handle_call(self, params: ToolCallParams) -> dict[str, Any]:
        """Handle tools/call request.

        Args:
            params: Decoded tool name and arguments.

        Returns:
            The tool result in MCP tools/call format.

        Raises:
            JsonRpcError: METHOD_NOT_FOUND for unknown tools, INVALID_PARAMS
                for arguments rejected by the schema, INTERNAL_ERROR when the
                tool fails.
        """
        if self._executor is None:
            raise JsonRpcError(INTERNAL_ERROR, "Tool executor not available")

        request_id = uuid.uuid4().hex
        if self._audit is not None:
            self._audit.log_request(request_id, params.name, params.arguments)

        start = time.perf_counter()
        status = "failure"
        error_message: str | None = None
        try:
            result = self._executor.call_tool(params.name, params.arguments)
            status = "error" if result.is_error else "success"
            return result.to_dict()
        except ToolNotFoundError as e:
            error_message = str(e)
            raise JsonRpcError(METHOD_NOT_FOUND, "Tool not found", str(e)) from e
        except InvalidToolArguments as e:
            error_message = str(e)
            raise JsonRpcError(INVALID_PARAMS, "Invalid tool arguments", str(e)) from e
        except ToolExecutionError as e:
            error_message = str(e)
            logger.info("Tool %s failed: %s", params.name, e)
            raise JsonRpcError(INTERNAL_ERROR, "Tool execution failed", str(e)) from e
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 3)
            logger.debug("Tool %s finished with %s in %.1f ms", params.name, status, duration_ms)
            if self._audit is not None:
                self._audit.log_response(request_id, status, duration_ms, error_message)
