"""Newline-delimited JSON over text streams.

:class:`StdioTransport` is the server side: it reads requests from stdin and
writes responses to stdout. :class:`StdioConnection` is the client side used
to drive a server subprocess through its pipes. Logging never goes to
stdout, which carries the protocol.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterator
from typing import TextIO

from mcp_ai_server.protocol.jsonrpc import Message
from mcp_ai_server.transport.connection import DEFAULT_QUEUE_SIZE, Connection

logger = logging.getLogger(__name__)


class StdioTransport:
    """Server-side STDIO transport.

    Reads JSON-RPC messages from stdin and writes responses to stdout, one
    message per line.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Initialize the transport.

        Args:
            stdin: Input stream (defaults to sys.stdin).
            stdout: Output stream (defaults to sys.stdout).
        """
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    def read_message(self) -> str | None:
        """Read the next non-empty line.

        Returns:
            Message string (stripped), or None on EOF or a read failure.
        """
        while True:
            try:
                line = self._stdin.readline()
            except (OSError, ValueError) as e:
                logger.error("Failed to read from stdin: %s", e)
                return None

            if not line:
                return None

            line = line.strip()
            if line:
                return line

    def write_message(self, message: str) -> None:
        """Write a message followed by a newline and flush.

        Args:
            message: JSON string to write.
        """
        self._stdout.write(message + "\n")
        self._stdout.flush()


class StdioConnection(Connection):
    """Client-side connection over a pair of text streams.

    Typically wraps the stdout and stdin pipes of a server subprocess.
    """

    def __init__(
        self,
        reader: TextIO,
        writer: TextIO,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        message_handler: Callable[[Message], None] | None = None,
    ) -> None:
        """Initialize the connection.

        Args:
            reader: Stream the peer writes messages to.
            writer: Stream the peer reads messages from.
            queue_size: Capacity of the inbound message queue.
            message_handler: Called for inbound requests and notifications.
        """
        super().__init__(queue_size=queue_size, message_handler=message_handler)
        self._reader = reader
        self._writer = writer

    def _open(self) -> None:
        return None

    def _close(self) -> None:
        try:
            self._writer.close()
        except OSError as e:
            logger.debug("Error closing writer: %s", e)

    def _read_frames(self) -> Iterator[str]:
        while True:
            line = self._reader.readline()
            if not line:
                return
            yield line

    def _write(self, data: str) -> None:
        self._writer.write(data + "\n")
        self._writer.flush()
