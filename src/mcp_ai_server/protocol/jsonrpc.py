"""JSON-RPC 2.0 message types, parsing and formatting.

Every line (stdio) or frame (WebSocket) exchanged with a peer is decoded into
a single immutable :class:`Message`. A message is exactly one of a request,
a notification or a response; :meth:`Message.validate` rejects anything that
mixes those shapes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000

# Maximum message size (1 MB)
MAX_MESSAGE_SIZE = 1_048_576

MessageId = int | float | str


@dataclass(frozen=True)
class ErrorObject:
    """The ``error`` member of a JSON-RPC error response."""

    code: int
    message: str
    data: Any | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON-RPC error object shape."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ErrorObject:
        """Build an error object from its decoded JSON form.

        Raises:
            JsonRpcError: If code or message have the wrong type.
        """
        code = data.get("code")
        message = data.get("message")
        if not isinstance(code, int) or isinstance(code, bool):
            raise JsonRpcError(INVALID_REQUEST, "Invalid Request: error.code must be an integer")
        if not isinstance(message, str):
            raise JsonRpcError(INVALID_REQUEST, "Invalid Request: error.message must be a string")
        return cls(code=code, message=message, data=data.get("data"))


class JsonRpcError(Exception):
    """JSON-RPC error with code and message."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        """Initialize the error.

        Args:
            code: JSON-RPC error code.
            message: Human-readable error message.
            data: Optional additional error data.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_error(self) -> ErrorObject:
        """Return the wire representation of this error."""
        return ErrorObject(code=self.code, message=self.message, data=self.data)


class ProtocolError(JsonRpcError):
    """Raised when a message or call order violates the protocol."""

    def __init__(self, message: str, code: int = INVALID_REQUEST, data: Any | None = None) -> None:
        super().__init__(code, message, data)


def _is_valid_id(value: Any) -> bool:
    return isinstance(value, int | float | str) and not isinstance(value, bool)


@dataclass(frozen=True)
class Message:
    """A JSON-RPC 2.0 envelope.

    ``None`` marks an absent member. Params, result and error data are kept
    as decoded JSON; params are only given a concrete type by the handler of
    the method they belong to.
    """

    jsonrpc: str = JSONRPC_VERSION
    id: MessageId | None = None
    method: str | None = None
    params: Any | None = None
    result: Any | None = None
    error: ErrorObject | None = None

    @classmethod
    def request(cls, msg_id: MessageId, method: str, params: Any | None = None) -> Message:
        """Build a request expecting a response correlated by ``msg_id``."""
        return cls(id=msg_id, method=method, params=params)

    @classmethod
    def notification(cls, method: str, params: Any | None = None) -> Message:
        """Build a notification (no id, no response expected)."""
        return cls(method=method, params=params)

    @classmethod
    def response(cls, msg_id: MessageId | None, result: Any) -> Message:
        """Build a successful response.

        Raises:
            ValueError: If ``result`` is None; use an empty object instead.
        """
        if result is None:
            raise ValueError("A response result must not be None")
        return cls(id=msg_id, result=result)

    @classmethod
    def error_response(
        cls,
        msg_id: MessageId | None,
        code: int,
        message: str,
        data: Any | None = None,
    ) -> Message:
        """Build an error response.

        Args:
            msg_id: Id of the request being answered, or None when it is unknown.
            code: JSON-RPC error code.
            message: Human-readable error message.
            data: Optional diagnostic payload.

        Returns:
            Error response message.
        """
        return cls(id=msg_id, error=ErrorObject(code=code, message=message, data=data))

    def is_request(self) -> bool:
        """Return True if this message is a request."""
        return bool(self.method) and self.id is not None

    def is_notification(self) -> bool:
        """Return True if this message is a notification."""
        return bool(self.method) and self.id is None

    def is_response(self) -> bool:
        """Return True if this message is a response to an earlier request."""
        return self.id is not None and (self.result is not None or self.error is not None)

    def validate(self) -> None:
        """Check the envelope shape.

        Raises:
            ProtocolError: If the version is wrong or the message is neither a
                request, a notification nor a response.
        """
        if self.jsonrpc != JSONRPC_VERSION:
            raise ProtocolError(f"Invalid JSON-RPC version: {self.jsonrpc!r}")

        has_payload = self.result is not None or self.error is not None
        if not self.method and not has_payload:
            raise ProtocolError("Message must have a method, result, or error")
        if self.method and has_payload:
            raise ProtocolError("Message cannot carry both a method and a result or error")
        if self.result is not None and self.error is not None:
            raise ProtocolError("Response cannot carry both a result and an error")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None or self.result is not None or self.error is not None:
            data["id"] = self.id
        if self.method:
            data["method"] = self.method
        if self.params is not None:
            data["params"] = self.params
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data

    def to_json(self) -> str:
        """Serialize to a single-line JSON string."""
        return json.dumps(self.to_dict(), separators=(",", ":"))


def parse_message(raw: str | bytes, max_size: int = MAX_MESSAGE_SIZE) -> Message:
    """Parse a JSON-RPC message from a string.

    The result is not validated; call :meth:`Message.validate` to check the
    envelope shape.

    Args:
        raw: Raw JSON text of one message.
        max_size: Largest accepted message, in characters.

    Returns:
        Parsed message.

    Raises:
        JsonRpcError: If the text is not JSON or a member has the wrong type.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise JsonRpcError(PARSE_ERROR, f"Parse error: {e}") from e

    # Check message size before parsing to prevent DoS
    if len(raw) > max_size:
        raise JsonRpcError(
            PARSE_ERROR, f"Message too large: {len(raw)} bytes exceeds {max_size} limit"
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise JsonRpcError(PARSE_ERROR, f"Parse error: {e}") from e

    if not isinstance(data, dict):
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request: message must be an object")

    msg_id = data.get("id")
    if msg_id is not None and not _is_valid_id(msg_id):
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request: id must be a number or string")

    method = data.get("method")
    if method is not None and not isinstance(method, str):
        raise JsonRpcError(INVALID_REQUEST, "Invalid Request: method must be a string")

    error = data.get("error")
    if error is not None:
        if not isinstance(error, dict):
            raise JsonRpcError(INVALID_REQUEST, "Invalid Request: error must be an object")
        error = ErrorObject.from_dict(error)

    return Message(
        jsonrpc=data.get("jsonrpc", ""),
        id=msg_id,
        method=method,
        params=data.get("params"),
        result=data.get("result"),
        error=error,
    )
