"""HTTP, DNS and ping tools.

Every destination is checked by the :class:`NetworkFirewall` before a
request is made. Redirects are not followed, since the target of a redirect
has not been checked.
"""

from __future__ import annotations

import ipaddress
import json
import logging
import subprocess
from typing import Any

import httpx

from mcp_ai_server.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolError,
    ToolResult,
    optional_int,
    optional_str,
    require_str,
)
from mcp_ai_server.security.firewall import NetworkFirewall, SecurityError
from mcp_ai_server.security.policy import MAX_COMMAND_OUTPUT

logger = logging.getLogger(__name__)

USER_AGENT = "mcp-ai-server/1.0 (Network Tools)"

GET_TIMEOUT = 60
POST_TIMEOUT = 300

DNS_RECORD_TYPES = ("A", "AAAA")

PING_DEFAULT_COUNT = 4
PING_MAX_COUNT = 20


def _headers_argument(arguments: dict[str, Any]) -> dict[str, str]:
    headers = arguments.get("headers") or {}
    if not isinstance(headers, dict):
        raise ToolError("'headers' must be an object")
    return {str(key): str(value) for key, value in headers.items() if isinstance(value, str)}


class NetworkToolsPlugin(PluginBase):
    """Provides http_get, http_post, dns_lookup and ping."""

    def __init__(
        self,
        firewall: NetworkFirewall,
        max_response_size: int = 1024 * 1024,
        max_command_output: int = MAX_COMMAND_OUTPUT,
        command_timeout: int = 30,
    ) -> None:
        """Initialize the plugin with a reusable HTTP client.

        Args:
            firewall: Firewall that approves every destination.
            max_response_size: Response bodies are truncated to this many bytes.
            max_command_output: Larger ping output is rejected.
            command_timeout: Seconds before a ping is abandoned.
        """
        self._firewall = firewall
        self._max_response_size = max_response_size
        self._max_command_output = max_command_output
        self._command_timeout = command_timeout
        self._client = httpx.Client(
            headers={"User-Agent": USER_AGENT},
            follow_redirects=False,
            timeout=GET_TIMEOUT,
        )

    @property
    def name(self) -> str:
        """Return plugin identifier."""
        return "network"

    @property
    def version(self) -> str:
        """Return plugin version."""
        return "1.0.0"

    def cleanup(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()

    def get_tools(self) -> list[ToolDefinition]:
        """Return available tools."""
        url = {"type": "string", "description": "http or https URL"}
        headers = {
            "type": "object",
            "additionalProperties": {"type": "string"},
            "description": "Request headers",
        }
        timeout = {"type": "integer", "minimum": 1, "description": "Timeout in seconds"}
        return [
            ToolDefinition(
                name="http_get",
                description="Send an HTTP GET request",
                input_schema={
                    "type": "object",
                    "properties": {"url": url, "headers": headers, "timeout": timeout},
                    "required": ["url"],
                },
            ),
            ToolDefinition(
                name="http_post",
                description="Send an HTTP POST request",
                input_schema={
                    "type": "object",
                    "properties": {
                        "url": url,
                        "data": {"type": "string", "description": "Request body"},
                        "headers": headers,
                        "timeout": timeout,
                    },
                    "required": ["url"],
                },
            ),
            ToolDefinition(
                name="dns_lookup",
                description="Resolve a domain name to its addresses",
                input_schema={
                    "type": "object",
                    "properties": {
                        "domain": {"type": "string", "description": "Domain to resolve"},
                        "type": {
                            "type": "string",
                            "enum": list(DNS_RECORD_TYPES),
                            "description": "Record type",
                            "default": "A",
                        },
                    },
                    "required": ["domain"],
                },
            ),
            ToolDefinition(
                name="ping",
                description="Check that a host answers ICMP echo requests",
                input_schema={
                    "type": "object",
                    "properties": {
                        "host": {"type": "string", "description": "Host name or IP address"},
                        "count": {
                            "type": "integer",
                            "minimum": 1,
                            "maximum": PING_MAX_COUNT,
                            "description": "Number of echo requests",
                            "default": PING_DEFAULT_COUNT,
                        },
                    },
                    "required": ["host"],
                },
            ),
        ]

    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a network tool."""
        try:
            if tool_name == "http_get":
                return self._http_request("GET", arguments, GET_TIMEOUT)
            if tool_name == "http_post":
                return self._http_request("POST", arguments, POST_TIMEOUT)
            if tool_name == "dns_lookup":
                return self._dns_lookup(arguments)
            if tool_name == "ping":
                return self._ping(arguments)
        except SecurityError as e:
            raise ToolError(str(e)) from e

        raise ToolError(f"Unknown tool: {tool_name}")

    def _http_request(
        self, method: str, arguments: dict[str, Any], default_timeout: int
    ) -> ToolResult:
        url = require_str(arguments, "url")
        if not url.startswith(("http://", "https://")):
            raise ToolError("Only http and https URLs are allowed")
        self._firewall.validate_url(url)

        headers = _headers_argument(arguments)
        timeout = optional_int(arguments, "timeout", default_timeout)
        if timeout <= 0:
            timeout = default_timeout

        data = None
        if method == "POST":
            data = optional_str(arguments, "data", "") or ""
            if not any(key.lower() == "content-type" for key in headers):
                headers["Content-Type"] = "application/x-www-form-urlencoded"

        logger.info("%s %s", method, url)
        try:
            response = self._client.request(
                method,
                url,
                headers=headers,
                content=data.encode("utf-8") if data is not None else None,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise ToolError(f"Request timed out after {timeout} seconds") from e
        except httpx.HTTPError as e:
            raise ToolError(f"Request failed: {e}") from e

        body = response.content
        truncated = len(body) > self._max_response_size
        info: dict[str, Any] = {
            "status_code": response.status_code,
            "status": response.reason_phrase,
            "headers": dict(response.headers),
            "body": body[: self._max_response_size].decode(
                response.encoding or "utf-8", errors="replace"
            ),
            "url": url,
        }
        if truncated:
            info["truncated"] = True
        if data is not None:
            info["data"] = data

        return ToolResult.text(json.dumps(info, indent=2, ensure_ascii=False))

    def _dns_lookup(self, arguments: dict[str, Any]) -> ToolResult:
        domain = require_str(arguments, "domain").strip()
        record_type = (optional_str(arguments, "type") or "A").upper()
        if record_type not in DNS_RECORD_TYPES:
            raise ToolError(f"Unsupported record type: {record_type}")

        version = 4 if record_type == "A" else 6
        addresses = [
            address
            for address in self._firewall.resolve_all(domain)
            if ipaddress.ip_address(address.split("%")[0]).version == version
        ]
        if not addresses:
            return ToolResult.text(f"No {record_type} records found for {domain}")

        lines = [f"{domain} {record_type} records:"]
        lines.extend(f"  {address}" for address in addresses)
        return ToolResult.text("\n".join(lines))

    def _ping(self, arguments: dict[str, Any]) -> ToolResult:
        host = require_str(arguments, "host").strip()
        if not host or host.startswith("-"):
            raise ToolError(f"Invalid host: {host!r}")
        count = optional_int(arguments, "count", PING_DEFAULT_COUNT)
        if not 1 <= count <= PING_MAX_COUNT:
            raise ToolError(f"'count' must be between 1 and {PING_MAX_COUNT}")
        self._firewall.validate_host(host)

        argv = ["ping", "-c", str(count), host]
        logger.info("Executing command: %s", " ".join(argv))
        try:
            completed = subprocess.run(  # noqa: S603
                argv,
                capture_output=True,
                timeout=self._command_timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolError("ping is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise ToolError(f"Ping timed out after {self._command_timeout} seconds") from e
        except OSError as e:
            raise ToolError(f"Ping failed to start: {e}") from e

        output = completed.stdout + completed.stderr
        if len(output) > self._max_command_output:
            raise ToolError(f"Ping output exceeds {self._max_command_output} bytes")

        text = output.decode("utf-8", errors="replace")
        if completed.returncode != 0:
            return ToolResult.text(
                f"Ping failed with exit code {completed.returncode}:\n{text}", is_error=True
            )
        return ToolResult.text(text)
