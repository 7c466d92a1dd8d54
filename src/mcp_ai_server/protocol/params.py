"""Typed parameters for the built-in methods.

Each known method decodes its opaque ``params`` into one of these classes
before doing any work. Tool ``arguments`` stay a plain mapping because their
shape is defined by whichever plugin owns the tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mcp_ai_server.protocol.jsonrpc import INVALID_PARAMS, JsonRpcError


@dataclass(frozen=True)
class ClientInfo:
    """Name and version announced by the peer during initialize."""

    name: str
    version: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "version": self.version}


@dataclass(frozen=True)
class InitializeParams:
    """Parameters of an ``initialize`` request."""

    protocol_version: str | None = None
    capabilities: dict[str, Any] = field(default_factory=dict)
    client_info: ClientInfo | None = None

    @classmethod
    def from_params(cls, params: Any) -> InitializeParams:
        """Decode initialize parameters.

        Decoding is best-effort: anything malformed is dropped rather than
        rejected, so this never raises.
        """
        if not isinstance(params, dict):
            return cls()

        version = params.get("protocolVersion")
        capabilities = params.get("capabilities")

        client_info = None
        raw_info = params.get("clientInfo")
        if isinstance(raw_info, dict) and isinstance(raw_info.get("name"), str):
            raw_version = raw_info.get("version", "")
            client_info = ClientInfo(
                name=raw_info["name"],
                version=raw_version if isinstance(raw_version, str) else str(raw_version),
            )

        return cls(
            protocol_version=version if isinstance(version, str) else None,
            capabilities=capabilities if isinstance(capabilities, dict) else {},
            client_info=client_info,
        )


@dataclass(frozen=True)
class ToolCallParams:
    """Parameters of a ``tools/call`` request."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_params(cls, params: Any) -> ToolCallParams:
        """Decode tools/call parameters.

        Raises:
            JsonRpcError: INVALID_PARAMS if ``name`` is missing or not a
                string, or ``arguments`` is not an object.
        """
        if not isinstance(params, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: expected an object")

        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: 'name' must be a non-empty string")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        elif not isinstance(arguments, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: 'arguments' must be an object")

        return cls(name=name, arguments=arguments)


@dataclass(frozen=True)
class ResourceReadParams:
    """Parameters of a ``resources/read`` request."""

    uri: str

    @classmethod
    def from_params(cls, params: Any) -> ResourceReadParams:
        """Decode resources/read parameters.

        Raises:
            JsonRpcError: INVALID_PARAMS if ``uri`` is missing or not a string.
        """
        if not isinstance(params, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: expected an object")

        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: 'uri' must be a non-empty string")

        return cls(uri=uri)
