"""Command-line entry point for the MCP server.

Runs the server over stdio (the default) or WebSocket:

    mcp-ai-server --mode stdio --config config/config.yaml
    mcp-ai-server --mode websocket --port 8081

Logs always go to stderr; in stdio mode stdout carries protocol messages.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from types import FrameType

from mcp_ai_server import __version__
from mcp_ai_server.config import VALID_MODES, AppConfig, ConfigLoadError, load_config
from mcp_ai_server.server import MCPServer

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    """Send log records at ``level`` and above to stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-ai-server",
        description="MCP tool server over stdio or WebSocket",
    )
    parser.add_argument(
        "--mode",
        choices=VALID_MODES,
        help="Transport to serve (default: from config, else stdio)",
    )
    parser.add_argument("--host", help="WebSocket bind address (default: from config)")
    parser.add_argument("--port", type=int, help="WebSocket port (default: from config)")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help=f"Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: from config, else INFO)",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"mcp-ai-server {__version__}",
    )
    return parser


def _load(path: Path | None) -> AppConfig:
    """Load the explicit config, or the default one when it exists."""
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return AppConfig()


def _serve_websocket(server: MCPServer, host: str | None, port: int | None) -> None:
    ws_server = server.create_websocket_server(host=host, port=port)
    stop_requested = threading.Event()

    def _on_sigterm(signum: int, frame: FrameType | None) -> None:
        logger.info("Received signal %d, stopping", signum)
        stop_requested.set()

    previous = signal.signal(signal.SIGTERM, _on_sigterm)
    ws_server.start()
    try:
        while ws_server.is_running and not stop_requested.wait(0.5):
            pass
    finally:
        ws_server.stop()
        signal.signal(signal.SIGTERM, previous)


def main(argv: list[str] | None = None) -> int:
    """Run the MCP server.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)

    configure_logging(args.log_level or "INFO")
    try:
        config = _load(args.config)
    except ConfigLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if not args.log_level:
        configure_logging(config.log_level)

    mode = args.mode or config.server.mode

    try:
        server = MCPServer(config)
        server.register_default_plugins()
    except (OSError, ValueError) as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1

    logger.info("Starting %s %s in %s mode", config.server.name, config.server.version, mode)
    try:
        with server:
            if mode == "websocket":
                _serve_websocket(server, args.host, args.port)
            else:
                server.serve_stdio()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 130
    except OSError as e:
        logger.error("Server error: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
