"""Data transformation tools: JSON, base64, hashing and text operations."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from typing import Any

from mcp_ai_server.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolError,
    ToolResult,
    optional_bool,
    optional_str,
    require_str,
)

HASH_ALGORITHMS = ("md5", "sha1", "sha256", "sha512")

TEXT_OPERATIONS = {
    "uppercase": str.upper,
    "lowercase": str.lower,
    "title": str.title,
    "reverse": lambda text: text[::-1],
    "trim": str.strip,
}


def _text_schema(description: str, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    properties: dict[str, Any] = {"text": {"type": "string", "description": description}}
    properties.update(extra or {})
    return {"type": "object", "properties": properties, "required": ["text"]}


class DataToolsPlugin(PluginBase):
    """Pure in-process data tools with no external side effects."""

    @property
    def name(self) -> str:
        """Return plugin identifier."""
        return "data"

    @property
    def version(self) -> str:
        """Return plugin version."""
        return "1.0.0"

    def get_tools(self) -> list[ToolDefinition]:
        """Return available tools."""
        json_string = {"type": "string", "description": "JSON document"}
        return [
            ToolDefinition(
                name="json_parse",
                description="Parse a JSON string and re-serialize it",
                input_schema={
                    "type": "object",
                    "properties": {
                        "json_string": json_string,
                        "pretty": {
                            "type": "boolean",
                            "description": "Indent the output",
                            "default": False,
                        },
                    },
                    "required": ["json_string"],
                },
            ),
            ToolDefinition(
                name="json_validate",
                description="Check whether a string is valid JSON",
                input_schema={
                    "type": "object",
                    "properties": {"json_string": json_string},
                    "required": ["json_string"],
                },
            ),
            ToolDefinition(
                name="base64_encode",
                description="Encode text as base64",
                input_schema=_text_schema("Text to encode"),
            ),
            ToolDefinition(
                name="base64_decode",
                description="Decode base64 to text",
                input_schema=_text_schema("Base64 data to decode"),
            ),
            ToolDefinition(
                name="hash",
                description="Compute a hex digest of text",
                input_schema=_text_schema(
                    "Text to hash",
                    {
                        "algorithm": {
                            "type": "string",
                            "enum": list(HASH_ALGORITHMS),
                            "description": "Digest algorithm",
                            "default": "md5",
                        }
                    },
                ),
            ),
            ToolDefinition(
                name="text_transform",
                description="Apply a simple transformation to text",
                input_schema={
                    "type": "object",
                    "properties": {
                        "text": {"type": "string", "description": "Text to transform"},
                        "operation": {
                            "type": "string",
                            "enum": list(TEXT_OPERATIONS),
                            "description": "Transformation to apply",
                        },
                    },
                    "required": ["text", "operation"],
                },
            ),
        ]

    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a data tool."""
        if tool_name == "json_parse":
            return self._json_parse(arguments)
        if tool_name == "json_validate":
            return self._json_validate(arguments)
        if tool_name == "base64_encode":
            encoded = base64.b64encode(require_str(arguments, "text").encode("utf-8"))
            return ToolResult.text(encoded.decode("ascii"))
        if tool_name == "base64_decode":
            return self._base64_decode(arguments)
        if tool_name == "hash":
            return self._hash(arguments)
        if tool_name == "text_transform":
            return self._text_transform(arguments)

        raise ToolError(f"Unknown tool: {tool_name}")

    def _json_parse(self, arguments: dict[str, Any]) -> ToolResult:
        raw = require_str(arguments, "json_string")
        pretty = optional_bool(arguments, "pretty", False)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolError(f"Invalid JSON: {e}") from e

        if pretty:
            return ToolResult.text(json.dumps(data, indent=2, ensure_ascii=False))
        return ToolResult.text(json.dumps(data, separators=(",", ":"), ensure_ascii=False))

    def _json_validate(self, arguments: dict[str, Any]) -> ToolResult:
        raw = require_str(arguments, "json_string")
        try:
            json.loads(raw)
        except json.JSONDecodeError as e:
            return ToolResult.text(f"Invalid JSON: {e}")
        return ToolResult.text("Valid JSON")

    def _base64_decode(self, arguments: dict[str, Any]) -> ToolResult:
        data = require_str(arguments, "text")
        try:
            decoded = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ToolError(f"Invalid base64 data: {e}") from e
        return ToolResult.text(decoded.decode("utf-8", errors="replace"))

    def _hash(self, arguments: dict[str, Any]) -> ToolResult:
        text = require_str(arguments, "text")
        algorithm = (optional_str(arguments, "algorithm") or "md5").lower()
        if algorithm not in HASH_ALGORITHMS:
            raise ToolError(f"Unsupported hash algorithm: {algorithm}")

        digest = hashlib.new(algorithm, text.encode("utf-8")).hexdigest()
        return ToolResult.text(f"{algorithm}: {digest}")

    def _text_transform(self, arguments: dict[str, Any]) -> ToolResult:
        text = require_str(arguments, "text")
        operation = require_str(arguments, "operation")
        transform = TEXT_OPERATIONS.get(operation)
        if transform is None:
            raise ToolError(
                f"Unsupported operation: {operation} "
                f"(expected one of {', '.join(TEXT_OPERATIONS)})"
            )
        return ToolResult.text(transform(text))
