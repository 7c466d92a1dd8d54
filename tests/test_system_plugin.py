"""Tests for the filesystem and process tools."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from mcp_ai_server.plugins.base import ToolError
from mcp_ai_server.plugins.system import SystemToolsPlugin
from mcp_ai_server.security.policy import SecurityPolicy
from mcp_ai_server.security.validator import InputValidator


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "notes.txt").write_text("hello world")
    (tmp_path / ".hidden").write_text("x")
    (tmp_path / "sub").mkdir()
    return tmp_path


@pytest.fixture
def plugin(workspace: Path) -> SystemToolsPlugin:
    policy = SecurityPolicy.from_dict(
        {
            "filesystem": {
                "allowed_paths": [str(workspace), f"{workspace}/**"],
                "denied_paths": ["**/*.key"],
            },
            "commands": {"allowed": ["echo", "ls", "false"]},
            "limits": {"max_file_size": 64, "max_directory_items": 10},
            "tools": {"timeout": 5},
        }
    )
    return SystemToolsPlugin(InputValidator(policy))


def _text(result) -> str:
    return result.content[0]["text"]


class TestSystemToolsPlugin:
    """Tests for plugin metadata."""

    def test_declares_tools(self, plugin: SystemToolsPlugin):
        """Should provide the four system tools."""
        names = [tool.name for tool in plugin.get_tools()]
        assert names == ["file_read", "file_write", "command_execute", "directory_list"]
        assert plugin.name == "system"

    def test_unknown_tool(self, plugin: SystemToolsPlugin):
        """Should raise ToolError for tools it does not own."""
        with pytest.raises(ToolError, match="Unknown tool"):
            plugin.execute("nope", {})


class TestFileTools:
    """Tests for file_read and file_write."""

    def test_file_read(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should return the file contents."""
        result = plugin.execute("file_read", {"path": str(workspace / "notes.txt")})
        assert _text(result) == "hello world"
        assert result.is_error is False

    def test_file_read_missing(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should report a missing file."""
        with pytest.raises(ToolError, match="File not found"):
            plugin.execute("file_read", {"path": str(workspace / "missing.txt")})

    def test_file_read_too_large(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should refuse files above the size limit."""
        big = workspace / "big.txt"
        big.write_text("x" * 65)
        with pytest.raises(ToolError, match="File too large"):
            plugin.execute("file_read", {"path": str(big)})

    def test_file_read_outside_allowed_paths(self, plugin: SystemToolsPlugin):
        """Should turn policy violations into ToolError."""
        with pytest.raises(ToolError, match="not in allowed directories"):
            plugin.execute("file_read", {"path": "/etc/hostname"})

    def test_file_read_denied(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should refuse denied files."""
        (workspace / "server.key").write_text("secret")
        with pytest.raises(ToolError, match="denied"):
            plugin.execute("file_read", {"path": str(workspace / "server.key")})

    def test_file_write_and_append(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should create, then append to, a file."""
        target = workspace / "new" / "out.txt"
        result = plugin.execute("file_write", {"path": str(target), "content": "abc"})
        assert _text(result) == f"Wrote 3 bytes to {target.resolve()}"

        result = plugin.execute(
            "file_write", {"path": str(target), "content": "de", "append": True}
        )
        assert _text(result).startswith("Appended 2 bytes")
        assert target.read_text() == "abcde"

    def test_file_write_too_large(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should refuse content above the size limit."""
        with pytest.raises(ToolError, match="byte limit"):
            plugin.execute("file_write", {"path": str(workspace / "x"), "content": "y" * 65})


class TestCommandExecute:
    """Tests for command_execute."""

    def test_runs_allowed_command(self, plugin: SystemToolsPlugin):
        """Should report exit code and stdout."""
        result = plugin.execute("command_execute", {"command": "echo", "args": ["hi", "there"]})
        assert _text(result) == "Exit code: 0\nStdout:\nhi there\n"
        assert result.is_error is False

    def test_arguments_are_not_interpreted_by_a_shell(self, plugin: SystemToolsPlugin):
        """Should pass metacharacters through as literal arguments."""
        result = plugin.execute("command_execute", {"command": "echo", "args": ["a;b", "$(id)"]})
        assert "a;b $(id)" in _text(result)

    def test_nonzero_exit_is_error_result(self, plugin: SystemToolsPlugin):
        """Should flag a failing command without raising."""
        result = plugin.execute("command_execute", {"command": "false"})
        assert _text(result).startswith("Exit code: 1")
        assert result.is_error is True

    def test_blocked_command(self, plugin: SystemToolsPlugin):
        """Should refuse commands outside the allow-list."""
        with pytest.raises(ToolError, match="not allowed"):
            plugin.execute("command_execute", {"command": "rm", "args": ["-rf", "/"]})

    def test_shell_syntax_in_command(self, plugin: SystemToolsPlugin):
        """Should refuse chaining in the command name."""
        with pytest.raises(ToolError, match="blocked metacharacter"):
            plugin.execute("command_execute", {"command": "echo hi; rm -rf /"})

    def test_working_directory(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should run in the validated working directory."""
        result = plugin.execute(
            "command_execute", {"command": "ls", "working_dir": str(workspace)}
        )
        assert "notes.txt" in _text(result)

    def test_timeout(self, plugin: SystemToolsPlugin):
        """Should report commands that exceed the tool timeout."""
        with patch(
            "mcp_ai_server.plugins.system.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="echo", timeout=5),
        ):
            with pytest.raises(ToolError, match="timed out after 5 seconds"):
                plugin.execute("command_execute", {"command": "echo"})

    def test_runs_without_shell(self, plugin: SystemToolsPlugin):
        """Should call subprocess with an argv list and the policy timeout."""
        completed = subprocess.CompletedProcess(["echo"], 0, stdout=b"", stderr=b"")
        with patch(
            "mcp_ai_server.plugins.system.subprocess.run", return_value=completed
        ) as run:
            plugin.execute("command_execute", {"command": "echo", "args": ["x"]})
        args, kwargs = run.call_args
        assert args[0] == ["echo", "x"]
        assert kwargs["timeout"] == 5
        assert "shell" not in kwargs


class TestDirectoryList:
    """Tests for directory_list."""

    def test_lists_visible_entries(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should list entries, hiding dotfiles by default."""
        text = _text(plugin.execute("directory_list", {"path": str(workspace)}))
        lines = text.splitlines()
        assert lines[0] == f"Directory: {workspace.resolve()}"
        assert lines[1].startswith("file") and lines[1].endswith("notes.txt")
        assert lines[2].startswith("dir ") and lines[2].endswith("sub")
        assert lines[-1] == "2 entries"

    def test_show_hidden(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should include dotfiles when asked."""
        text = _text(
            plugin.execute("directory_list", {"path": str(workspace), "show_hidden": True})
        )
        assert ".hidden" in text
        assert text.endswith("3 entries")

    def test_truncates_long_listings(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should cap the number of listed entries."""
        for i in range(12):
            (workspace / "sub" / f"f{i:02}").write_text("")
        text = _text(plugin.execute("directory_list", {"path": str(workspace / "sub")}))
        assert text.endswith("[listing truncated to 10 of 12 entries]")

    def test_not_a_directory(self, plugin: SystemToolsPlugin, workspace: Path):
        """Should report paths that are not directories."""
        with pytest.raises(ToolError, match="Directory not found"):
            plugin.execute("directory_list", {"path": str(workspace / "notes.txt")})
