"""Client-role connection with request/response correlation.

A connection runs two daemon threads while started:

* the read loop turns incoming frames into messages and puts them on a
  bounded queue;
* the dispatch loop drains the queue, hands responses to the pending table
  and passes everything else to an optional message handler.

When the queue is full the incoming message is dropped and logged; the
reader never blocks on a slow consumer. A dropped response surfaces as a
timeout on the waiting side.
"""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from typing import Any

from mcp_ai_server.protocol.jsonrpc import JsonRpcError, Message, parse_message
from mcp_ai_server.transport.pending import PendingResponses

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100

# Tool results can be much larger than the requests a server accepts
MAX_INBOUND_SIZE = 64 * 1024 * 1024

# How often the dispatch loop checks the stop signal while idle
_POLL_INTERVAL = 0.05


class TransportError(Exception):
    """Raised when a message cannot be written to the peer."""

    pass


class ConnectionStateError(TransportError):
    """Raised when an operation does not fit the connection's state."""

    pass


class Connection(ABC):
    """Base class for client-role transports."""

    def __init__(
        self,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        message_handler: Callable[[Message], None] | None = None,
    ) -> None:
        """Initialize the connection.

        Args:
            queue_size: Capacity of the inbound message queue.
            message_handler: Called on the dispatch thread for every inbound
                message that is not a response.
        """
        self._queue: queue.Queue[Message] = queue.Queue(maxsize=queue_size)
        self._pending = PendingResponses()
        self._message_handler = message_handler
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._running = False
        self._threads: list[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    @property
    def pending(self) -> PendingResponses:
        return self._pending

    def start(self) -> None:
        """Open the transport and start the read and dispatch loops.

        Raises:
            ConnectionStateError: If the connection is already running.
        """
        with self._state_lock:
            if self._running:
                raise ConnectionStateError("Connection is already running")
            self._open()
            self._stop_event.clear()
            self._running = True
            label = type(self).__name__
            self._threads = [
                threading.Thread(target=self._read_loop, name=f"{label}-read", daemon=True),
                threading.Thread(target=self._dispatch_loop, name=f"{label}-dispatch", daemon=True),
            ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Stop the loops and close the transport. Safe to call repeatedly."""
        with self._state_lock:
            if not self._running and self._stop_event.is_set():
                return
            self._running = False
            self._stop_event.set()
        try:
            self._close()
        except Exception:
            logger.debug("Error while closing %s", type(self).__name__, exc_info=True)
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=0.5)
        self._pending.clear()

    def send_message(self, message: Message) -> None:
        """Serialize and write one message.

        Requests are registered in the pending table before any byte is
        written, so a fast response always finds its entry.

        Raises:
            ConnectionStateError: If the connection is not running.
            TransportError: If the write fails.
        """
        if not self.is_running:
            raise ConnectionStateError("Connection is not running")

        data = message.to_json()
        is_request = message.is_request()
        if is_request:
            self._pending.register(message.id)

        try:
            with self._write_lock:
                self._write(data)
        except Exception as e:
            if is_request:
                self._pending.discard(message.id)
            raise TransportError(f"Failed to send message: {e}") from e

    def wait_for_response(self, request_id: Any, timeout: float) -> Message | None:
        """Wait for the response to a request sent on this connection.

        Returns:
            The response, or None if none arrived within ``timeout`` seconds.
        """
        return self._pending.wait(request_id, timeout)

    def _read_loop(self) -> None:
        try:
            for frame in self._read_frames():
                if self._stop_event.is_set():
                    break
                if not frame.strip():
                    continue
                try:
                    message = parse_message(frame, max_size=MAX_INBOUND_SIZE)
                except JsonRpcError as e:
                    logger.warning("Skipping malformed message from peer: %s", e.message)
                    continue
                try:
                    self._queue.put_nowait(message)
                except queue.Full:
                    logger.warning("Inbound queue full, dropping message id=%s", message.id)
        except Exception as e:
            if not self._stop_event.is_set():
                logger.error("Read loop failed: %s", e)
        finally:
            if not self._stop_event.is_set():
                logger.info("Peer closed the connection")
            with self._state_lock:
                self._running = False

    def _dispatch_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                message = self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            self._dispatch(message)

    def _dispatch(self, message: Message) -> None:
        if message.is_response() or (message.error is not None and not message.method):
            if not self._pending.resolve(message):
                logger.debug("Discarding unclaimed response id=%s", message.id)
            return

        if self._message_handler is None:
            logger.debug("Ignoring message from peer: %s", message.method)
            return
        try:
            self._message_handler(message)
        except Exception:
            logger.exception("Message handler failed for %s", message.method)

    @abstractmethod
    def _open(self) -> None:
        """Open the underlying transport."""

    @abstractmethod
    def _close(self) -> None:
        """Close the underlying transport, unblocking the reader."""

    @abstractmethod
    def _read_frames(self) -> Iterator[str]:
        """Yield raw inbound frames until the peer closes."""

    @abstractmethod
    def _write(self, data: str) -> None:
        """Write one serialized message."""
