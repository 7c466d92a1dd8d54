"""Tests for the stdio transport and client-side stdio connection."""

import io
import logging
import os
import threading
import time
from collections.abc import Iterator

import pytest

from mcp_ai_server.protocol.jsonrpc import Message
from mcp_ai_server.protocol.session import Session
from mcp_ai_server.transport.connection import ConnectionStateError, TransportError
from mcp_ai_server.transport.stdio import StdioConnection, StdioTransport


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class Pipe:
    """An OS pipe wrapped in text streams."""

    def __init__(self) -> None:
        read_fd, write_fd = os.pipe()
        self.reader = os.fdopen(read_fd, "r", encoding="utf-8")
        self.writer = os.fdopen(write_fd, "w", encoding="utf-8")

    def send(self, text: str) -> None:
        self.writer.write(text)
        self.writer.flush()

    def close(self) -> None:
        for stream in (self.writer, self.reader):
            if not stream.closed:
                stream.close()


@pytest.fixture
def inbound() -> Iterator[Pipe]:
    """A pipe the test writes server output into."""
    pipe = Pipe()
    yield pipe
    pipe.close()


@pytest.fixture
def connection(inbound: Pipe) -> Iterator[StdioConnection]:
    """A started connection reading from ``inbound`` and writing to a buffer."""
    conn = StdioConnection(inbound.reader, io.StringIO())
    conn.start()
    yield conn
    if not inbound.writer.closed:
        inbound.writer.close()
    conn.stop()


class TestStdioTransport:
    """Tests for the server-side line transport."""

    def test_reads_lines_skipping_blanks(self):
        """Should return stripped lines and None at EOF."""
        transport = StdioTransport(io.StringIO('\n  \n{"a": 1}\r\n{"b": 2}\n'), io.StringIO())
        assert transport.read_message() == '{"a": 1}'
        assert transport.read_message() == '{"b": 2}'
        assert transport.read_message() is None

    def test_writes_one_message_per_line(self):
        """Should terminate each message with a newline."""
        out = io.StringIO()
        transport = StdioTransport(io.StringIO(), out)
        transport.write_message('{"x": 1}')
        transport.write_message('{"y": 2}')
        assert out.getvalue() == '{"x": 1}\n{"y": 2}\n'

    def test_read_failure_is_eof(self):
        """Should treat a closed stdin as end of input."""
        stdin = io.StringIO("data\n")
        stdin.close()
        assert StdioTransport(stdin, io.StringIO()).read_message() is None


class TestStdioConnection:
    """Tests for the client-side connection."""

    def test_response_is_correlated(self, connection: StdioConnection, inbound: Pipe):
        """Should deliver a response to the waiter of the matching request."""
        connection.send_message(Message.request(1, "tools/list"))
        inbound.send('{"jsonrpc": "2.0", "id": 1, "result": {"tools": []}}\n')
        response = connection.wait_for_response(1, timeout=2.0)
        assert response is not None
        assert response.result == {"tools": []}

    def test_writes_requests_as_lines(self, inbound: Pipe):
        """Should write one JSON line per message."""
        out = io.StringIO()
        conn = StdioConnection(inbound.reader, out)
        conn.start()
        try:
            conn.send_message(Message.notification("notifications/initialized"))
            assert out.getvalue() == '{"jsonrpc":"2.0","method":"notifications/initialized"}\n'
        finally:
            inbound.writer.close()
            conn.stop()

    def test_timeout_returns_none(self, connection: StdioConnection):
        """Should give up after the timeout and forget the request."""
        connection.send_message(Message.request(7, "tools/list"))
        assert connection.wait_for_response(7, timeout=0.05) is None
        assert 7 not in connection.pending

    def test_malformed_frames_are_skipped(self, connection: StdioConnection, inbound: Pipe):
        """Should keep reading after garbage and blank lines."""
        connection.send_message(Message.request(2, "ping"))
        inbound.send('not json\n\n[1]\n{"jsonrpc": "2.0", "id": 2, "result": "pong"}\n')
        assert connection.wait_for_response(2, timeout=2.0).result == "pong"

    def test_error_response_is_delivered(self, connection: StdioConnection, inbound: Pipe):
        """Should resolve a request with an error response."""
        connection.send_message(Message.request(3, "nope"))
        inbound.send(
            '{"jsonrpc": "2.0", "id": 3, '
            '"error": {"code": -32601, "message": "Method not found"}}\n'
        )
        assert connection.wait_for_response(3, timeout=2.0).error.code == -32601

    def test_requests_and_notifications_go_to_handler(self, inbound: Pipe):
        """Should pass non-response messages to the message handler."""
        received: list[Message] = []
        conn = StdioConnection(inbound.reader, io.StringIO(), message_handler=received.append)
        conn.start()
        try:
            inbound.send('{"jsonrpc": "2.0", "method": "notifications/tools/list_changed"}\n')
            assert _wait_until(lambda: len(received) == 1)
            assert received[0].method == "notifications/tools/list_changed"
        finally:
            inbound.writer.close()
            conn.stop()

    def test_full_queue_drops_messages(self, inbound: Pipe, caplog):
        """Should drop inbound messages instead of blocking the reader."""
        release = threading.Event()
        received: list[Message] = []

        def slow_handler(message: Message) -> None:
            received.append(message)
            release.wait(2.0)

        conn = StdioConnection(
            inbound.reader, io.StringIO(), queue_size=1, message_handler=slow_handler
        )
        with caplog.at_level(logging.WARNING):
            conn.start()
            try:
                lines = "".join(
                    f'{{"jsonrpc": "2.0", "method": "note/{i}"}}\n' for i in range(5)
                )
                inbound.send(lines)
                inbound.writer.close()
                assert _wait_until(lambda: not conn.is_running)
                release.set()
            finally:
                conn.stop()

        assert "Inbound queue full" in caplog.text
        assert len(received) < 5

    def test_eof_stops_connection(self, connection: StdioConnection, inbound: Pipe):
        """Should mark the connection stopped when the peer closes."""
        inbound.writer.close()
        assert _wait_until(lambda: not connection.is_running)
        with pytest.raises(ConnectionStateError):
            connection.send_message(Message.request(1, "ping"))

    def test_start_twice_fails(self, connection: StdioConnection):
        """Should refuse to start a running connection."""
        with pytest.raises(ConnectionStateError, match="already running"):
            connection.start()

    def test_send_before_start_fails(self):
        """Should refuse to send on a connection that is not running."""
        conn = StdioConnection(io.StringIO(), io.StringIO())
        with pytest.raises(ConnectionStateError, match="not running"):
            conn.send_message(Message.request(1, "ping"))

    def test_stop_is_idempotent(self, connection: StdioConnection, inbound: Pipe):
        """Should clear pending requests and tolerate repeated stops."""
        connection.send_message(Message.request(1, "ping"))
        inbound.writer.close()
        connection.stop()
        connection.stop()
        assert len(connection.pending) == 0
        assert not connection.is_running

    def test_write_failure(self, inbound: Pipe):
        """Should raise TransportError and forget the request."""
        writer = io.StringIO()
        conn = StdioConnection(inbound.reader, writer)
        conn.start()
        try:
            writer.close()
            with pytest.raises(TransportError, match="Failed to send"):
                conn.send_message(Message.request(1, "ping"))
            assert 1 not in conn.pending
        finally:
            inbound.writer.close()
            conn.stop()


class TestStdioEndToEnd:
    """Drives a session through a pair of pipes."""

    def test_client_and_server_over_pipes(self, session: Session):
        """Should complete initialize and a tool call."""
        to_server = Pipe()
        to_client = Pipe()

        def serve() -> None:
            transport = StdioTransport(to_server.reader, to_client.writer)
            while True:
                raw = transport.read_message()
                if raw is None:
                    break
                response = session.handle_raw(raw)
                if response is not None:
                    transport.write_message(response)
            to_client.writer.close()

        server = threading.Thread(target=serve, daemon=True)
        server.start()
        conn = StdioConnection(to_client.reader, to_server.writer)
        conn.start()
        try:
            conn.send_message(Message.request(1, "initialize", {}))
            assert conn.wait_for_response(1, timeout=2.0).result["protocolVersion"]

            conn.send_message(
                Message.request(2, "tools/call", {"name": "add", "arguments": {"a": 1, "b": 2}})
            )
            result = conn.wait_for_response(2, timeout=2.0).result
            assert result["content"][0]["text"] == "3"
        finally:
            conn.stop()
            server.join(timeout=2.0)
            to_server.close()
            to_client.close()
