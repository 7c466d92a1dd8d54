"""Interactive console for exploring an MCP server.

Starts the server as a subprocess speaking stdio, or connects to a running
WebSocket server, and accepts commands such as ``tools`` and
``call hash {"text": "hi"}``.
"""

from __future__ import annotations

import argparse
import json
import logging
import shlex
import subprocess
import sys
from typing import TextIO

from mcp_ai_server.client.client import ClientError, MCPClient, result_text
from mcp_ai_server.transport.connection import Connection, TransportError
from mcp_ai_server.transport.stdio import StdioConnection
from mcp_ai_server.transport.websocket import WebSocketConnection

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Commands:
  help                      Show this help
  init                      Run the initialize handshake again
  tools                     List available tools
  call <tool> [json-args]   Call a tool, e.g. call hash {"text": "hi"}
  read <uri>                Read a resource
  shutdown                  End the session on the server
  quit                      Leave the console
"""


class Console:
    """Line-oriented command interpreter bound to an :class:`MCPClient`."""

    def __init__(self, client: MCPClient, output: TextIO | None = None) -> None:
        self._client = client
        self._out = output or sys.stdout

    def _print(self, text: str = "") -> None:
        self._out.write(text + "\n")
        self._out.flush()

    def execute(self, line: str) -> bool:
        """Run one command line.

        Returns:
            False when the console should exit.
        """
        line = line.strip()
        if not line:
            return True

        command, _, rest = line.partition(" ")
        rest = rest.strip()
        command = command.lower()

        if command in ("quit", "exit"):
            return False

        try:
            if command == "help":
                self._print(HELP_TEXT)
            elif command == "init":
                result = self._client.initialize()
                self._print(json.dumps(result, indent=2))
            elif command == "tools":
                self._list_tools()
            elif command == "call":
                self._call(rest)
            elif command == "read":
                if not rest:
                    self._print("Usage: read <uri>")
                else:
                    result = self._client.read_resource(rest)
                    self._print(json.dumps(result, indent=2, ensure_ascii=False))
            elif command == "shutdown":
                self._client.shutdown()
                self._print("Session shut down; use 'init' to start again")
            else:
                self._print(f"Unknown command: {command} (try 'help')")
        except ClientError as e:
            self._print(f"Error: {e}")
        except TransportError as e:
            self._print(f"Connection error: {e}")
            return False
        return True

    def _list_tools(self) -> None:
        tools = self._client.list_tools()
        self._print(f"{len(tools)} tools:")
        for tool in tools:
            self._print(f"  {tool.name:<24} {tool.description}")

    def _call(self, rest: str) -> None:
        name, _, raw_args = rest.partition(" ")
        if not name:
            self._print("Usage: call <tool> [json-args]")
            return

        arguments = {}
        if raw_args.strip():
            try:
                arguments = json.loads(raw_args)
            except json.JSONDecodeError as e:
                self._print(f"Invalid JSON arguments: {e}")
                return
            if not isinstance(arguments, dict):
                self._print("Arguments must be a JSON object")
                return

        result = self._client.call_tool(name, arguments)
        prefix = "Tool reported an error:\n" if result.get("isError") else ""
        self._print(prefix + result_text(result))

    def run(self, stdin: TextIO | None = None) -> None:
        """Read and execute commands until quit or end of input."""
        source = stdin or sys.stdin
        interactive = source.isatty()
        while True:
            if interactive:
                self._out.write("mcp> ")
                self._out.flush()
            line = source.readline()
            if not line:
                break
            if not self.execute(line):
                break


def _open_connection(args: argparse.Namespace) -> tuple[Connection, subprocess.Popen[str] | None]:
    if args.url:
        return WebSocketConnection(args.url), None

    if args.server_command:
        command = shlex.split(args.server_command)
    else:
        command = [sys.executable, "-m", "mcp_ai_server", "--mode", "stdio"]
        command += ["--log-level", "WARNING"]
        if args.config:
            command += ["--config", args.config]

    logger.info("Starting server: %s", " ".join(command))
    process = subprocess.Popen(  # noqa: S603
        command,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        bufsize=1,
    )
    if process.stdout is None or process.stdin is None:
        process.kill()
        raise TransportError("Server process was started without stdio pipes")
    return StdioConnection(process.stdout, process.stdin), process


def main(argv: list[str] | None = None) -> int:
    """Run the interactive console.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(description="Interactive MCP client console")
    parser.add_argument("--url", help="Connect to a WebSocket server, e.g. ws://localhost:8081/")
    parser.add_argument(
        "--server-command",
        help="Command that starts a stdio server (default: this package in stdio mode)",
    )
    parser.add_argument("--config", "-c", help="Config file passed to the spawned server")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        connection, process = _open_connection(args)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    client = MCPClient(connection)
    try:
        connection.start()
        result = client.initialize()
        info = result.get("serverInfo", {})
        print(f"Connected to {info.get('name', '?')} {info.get('version', '')}")
        print("Type 'help' for commands.")
        Console(client).run()
    except KeyboardInterrupt:
        return 130
    except (ClientError, TransportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        connection.stop()
        if process is not None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()

    return 0


if __name__ == "__main__":
    sys.exit(main())
