"""Filesystem and process tools.

Every path and command is checked by the :class:`InputValidator` before it
is touched, and output sizes are capped by the security policy.
"""

from __future__ import annotations

import logging
import os
import subprocess
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from mcp_ai_server.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolError,
    ToolResult,
    optional_bool,
    optional_str,
    require_str,
)
from mcp_ai_server.security.validator import InputValidator, ValidationError

logger = logging.getLogger(__name__)


class SystemToolsPlugin(PluginBase):
    """Provides file_read, file_write, command_execute and directory_list."""

    def __init__(self, validator: InputValidator) -> None:
        """Initialize the plugin.

        Args:
            validator: Validator enforcing the filesystem and command policy.
        """
        self._validator = validator
        self._policy = validator.policy

    @property
    def name(self) -> str:
        """Return plugin identifier."""
        return "system"

    @property
    def version(self) -> str:
        """Return plugin version."""
        return "1.0.0"

    def get_tools(self) -> list[ToolDefinition]:
        """Return available tools."""
        return [
            ToolDefinition(
                name="file_read",
                description="Read the contents of a text file",
                input_schema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "File path to read"},
                        "encoding": {
                            "type": "string",
                            "description": "Text encoding",
                            "default": "utf-8",
                        },
                    },
                    "required": ["path"],
                },
            ),
            ToolDefinition(
                name="file_write",
                description="Write text to a file, replacing or appending",
                input_schema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "File path to write"},
                        "content": {"type": "string", "description": "Text to write"},
                        "append": {
                            "type": "boolean",
                            "description": "Append instead of overwriting",
                            "default": False,
                        },
                    },
                    "required": ["path", "content"],
                },
            ),
            ToolDefinition(
                name="command_execute",
                description="Run an allowed system command without a shell",
                input_schema={
                    "type": "object",
                    "properties": {
                        "command": {"type": "string", "description": "Program to run"},
                        "args": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Command arguments",
                        },
                        "working_dir": {
                            "type": "string",
                            "description": "Working directory",
                        },
                    },
                    "required": ["command"],
                },
            ),
            ToolDefinition(
                name="directory_list",
                description="List the entries of a directory",
                input_schema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Directory to list"},
                        "show_hidden": {
                            "type": "boolean",
                            "description": "Include entries starting with a dot",
                            "default": False,
                        },
                    },
                    "required": ["path"],
                },
            ),
        ]

    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a system tool."""
        try:
            if tool_name == "file_read":
                return self._file_read(arguments)
            if tool_name == "file_write":
                return self._file_write(arguments)
            if tool_name == "command_execute":
                return self._command_execute(arguments)
            if tool_name == "directory_list":
                return self._directory_list(arguments)
        except ValidationError as e:
            raise ToolError(str(e)) from e

        raise ToolError(f"Unknown tool: {tool_name}")

    def _file_read(self, arguments: dict[str, Any]) -> ToolResult:
        path = Path(self._validator.validate_path(require_str(arguments, "path")))
        encoding = optional_str(arguments, "encoding", "utf-8") or "utf-8"

        if not path.is_file():
            raise ToolError(f"File not found: {path}")
        size = path.stat().st_size
        if size > self._policy.max_file_size:
            raise ToolError(
                f"File too large: {size} bytes exceeds {self._policy.max_file_size} limit"
            )

        try:
            content = path.read_text(encoding=encoding)
        except (OSError, UnicodeDecodeError, LookupError) as e:
            raise ToolError(f"Cannot read {path}: {e}") from e

        return ToolResult.text(content)

    def _file_write(self, arguments: dict[str, Any]) -> ToolResult:
        path = Path(self._validator.validate_path(require_str(arguments, "path")))
        content = require_str(arguments, "content")
        append = optional_bool(arguments, "append", False)

        data = content.encode("utf-8")
        if len(data) > self._policy.max_file_size:
            raise ToolError(f"Content exceeds {self._policy.max_file_size} byte limit")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "ab" if append else "wb") as f:
                f.write(data)
        except OSError as e:
            raise ToolError(f"Cannot write {path}: {e}") from e

        action = "Appended" if append else "Wrote"
        return ToolResult.text(f"{action} {len(data)} bytes to {path}")

    def _command_execute(self, arguments: dict[str, Any]) -> ToolResult:
        command = require_str(arguments, "command")
        args = arguments.get("args") or []
        if not isinstance(args, list):
            raise ToolError("'args' must be an array of strings")
        argv = self._validator.validate_command(command, args)

        working_dir = optional_str(arguments, "working_dir")
        cwd = self._validator.validate_path(working_dir) if working_dir else None
        if cwd is not None and not os.path.isdir(cwd):
            raise ToolError(f"Working directory not found: {cwd}")

        logger.info("Executing command: %s", " ".join(argv))
        try:
            completed = subprocess.run(  # noqa: S603
                argv,
                cwd=cwd,
                capture_output=True,
                timeout=self._policy.tool_timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolError(f"Command not found: {argv[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise ToolError(
                f"Command timed out after {self._policy.tool_timeout} seconds"
            ) from e
        except OSError as e:
            raise ToolError(f"Command failed to start: {e}") from e

        limit = self._policy.max_command_output
        stdout = completed.stdout[:limit].decode("utf-8", errors="replace")
        stderr = completed.stderr[:limit].decode("utf-8", errors="replace")
        truncated = len(completed.stdout) > limit or len(completed.stderr) > limit

        lines = [f"Exit code: {completed.returncode}"]
        if stdout:
            lines.append(f"Stdout:\n{stdout}")
        if stderr:
            lines.append(f"Stderr:\n{stderr}")
        if truncated:
            lines.append(f"[output truncated to {limit} bytes]")

        return ToolResult.text("\n".join(lines), is_error=completed.returncode != 0)

    def _directory_list(self, arguments: dict[str, Any]) -> ToolResult:
        path = Path(self._validator.validate_path(require_str(arguments, "path")))
        show_hidden = optional_bool(arguments, "show_hidden", False)

        if not path.is_dir():
            raise ToolError(f"Directory not found: {path}")

        try:
            entries = sorted(path.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise ToolError(f"Cannot list {path}: {e}") from e

        if not show_hidden:
            entries = [entry for entry in entries if not entry.name.startswith(".")]

        limit = self._policy.max_directory_items
        lines = [f"Directory: {path}"]
        for entry in entries[:limit]:
            try:
                stat = entry.stat()
            except OSError:
                lines.append(f"?    {entry.name}")
                continue
            kind = "dir " if entry.is_dir() else "file"
            modified = datetime.fromtimestamp(stat.st_mtime, UTC).strftime("%Y-%m-%d %H:%M")
            lines.append(f"{kind} {stat.st_size:>12} {modified} {entry.name}")

        if len(entries) > limit:
            lines.append(f"[listing truncated to {limit} of {len(entries)} entries]")
        else:
            lines.append(f"{len(entries)} entries")

        return ToolResult.text("\n".join(lines))
