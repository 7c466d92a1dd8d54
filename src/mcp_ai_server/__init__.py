"""MCP tool server and client over stdio and WebSocket."""

__version__ = "1.0.0"
