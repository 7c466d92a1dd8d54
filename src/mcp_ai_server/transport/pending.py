"""Correlation table for in-flight requests."""

from __future__ import annotations

import threading
import time
from typing import Any

from mcp_ai_server.protocol.jsonrpc import Message


class PendingResponses:
    """Maps request ids to the response that answers them.

    An entry exists from the moment a request is registered until a waiter
    takes the response or gives up. Responses for ids without an entry are
    refused, so a response that arrives after its waiter timed out is never
    handed to anyone.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._entries: dict[Any, Message | None] = {}

    def register(self, request_id: Any) -> None:
        """Create an awaiting entry for ``request_id``.

        Raises:
            ValueError: If the id is already awaiting a response.
        """
        with self._cond:
            if request_id in self._entries:
                raise ValueError(f"Request id {request_id!r} is already pending")
            self._entries[request_id] = None

    def resolve(self, message: Message) -> bool:
        """Store a response and wake its waiter.

        Returns:
            False if no request with that id is pending or it already has a
            response.
        """
        with self._cond:
            if message.id not in self._entries or self._entries[message.id] is not None:
                return False
            self._entries[message.id] = message
            self._cond.notify_all()
            return True

    def wait(self, request_id: Any, timeout: float) -> Message | None:
        """Block until the response for ``request_id`` arrives.

        The entry is removed whether or not a response arrived, so waiting a
        second time on the same id returns None immediately.

        Args:
            request_id: Id of a registered request.
            timeout: Maximum number of seconds to wait.

        Returns:
            The response, or None if it did not arrive in time.
        """
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                if request_id not in self._entries:
                    return None
                response = self._entries[request_id]
                if response is not None:
                    del self._entries[request_id]
                    return response
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    del self._entries[request_id]
                    return None
                self._cond.wait(remaining)

    def discard(self, request_id: Any) -> None:
        """Forget a pending request."""
        with self._cond:
            self._entries.pop(request_id, None)
            self._cond.notify_all()

    def clear(self) -> None:
        """Forget every pending request and release all waiters."""
        with self._cond:
            self._entries.clear()
            self._cond.notify_all()

    def __contains__(self, request_id: Any) -> bool:
        with self._cond:
            return request_id in self._entries

    def __len__(self) -> int:
        with self._cond:
            return len(self._entries)
