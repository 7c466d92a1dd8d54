"""Security policy for tool execution.

The policy is the ``security`` section of the server configuration. It
describes which paths, commands and network destinations tools may touch,
and the size limits applied to their output.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any

DEFAULT_ALLOWED_COMMANDS = [
    "ls",
    "cat",
    "echo",
    "pwd",
    "whoami",
    "date",
    "ps",
    "mkdir",
    "cp",
    "mv",
]

MAX_FILE_SIZE = 100 * 1024 * 1024
MAX_COMMAND_OUTPUT = 10 * 1024 * 1024
MAX_DIRECTORY_ITEMS = 1000

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(value: str) -> str:
    """Expand environment variables in a string.

    Supports ${VAR_NAME} syntax. Unknown variables are left unchanged.

    Args:
        value: String potentially containing environment variable references.

    Returns:
        String with known environment variables expanded.
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if var_name == "HOME":
            return os.path.expanduser("~")
        return match.group(0)

    return _ENV_VAR_PATTERN.sub(replacer, value)


@dataclass
class SecurityPolicy:
    """Security policy configuration.

    Every tool that reaches outside the process consults this policy before
    acting. Empty allow-lists mean "no restriction" for paths and "nothing
    allowed" for commands.
    """

    # Network settings
    network_allowed_ranges: list[str] = field(default_factory=list)
    network_allowed_endpoints: list[dict[str, Any]] = field(default_factory=list)
    network_blocked_ports: list[int] = field(default_factory=list)
    allow_dns: bool = False
    dns_allowlist: list[str] = field(default_factory=list)

    # Filesystem settings
    filesystem_allowed_paths: list[str] = field(default_factory=list)
    filesystem_denied_paths: list[str] = field(default_factory=list)

    # Command settings
    commands_allowed: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_COMMANDS))
    commands_blocked: list[str] = field(default_factory=list)

    # Limits
    max_file_size: int = MAX_FILE_SIZE
    max_command_output: int = MAX_COMMAND_OUTPUT
    max_directory_items: int = MAX_DIRECTORY_ITEMS
    max_response_size: int = 1024 * 1024

    # Tool settings
    tool_timeout: int = 30
    validate_arguments: bool = True

    # Audit settings
    audit_log_file: str = ""

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> SecurityPolicy:
        """Create a SecurityPolicy from a configuration dictionary.

        Args:
            config: Dictionary parsed from the ``security`` section.

        Returns:
            SecurityPolicy instance with all settings populated.
        """
        network = config.get("network") or {}
        filesystem = config.get("filesystem") or {}
        commands = config.get("commands") or {}
        limits = config.get("limits") or {}
        tools = config.get("tools") or {}
        audit = config.get("audit") or {}

        # Expand environment variables in paths
        allowed_paths = [expand_env_vars(p) for p in filesystem.get("allowed_paths", [])]
        denied_paths = [expand_env_vars(p) for p in filesystem.get("denied_paths", [])]
        log_file = expand_env_vars(audit.get("log_file", ""))

        return cls(
            network_allowed_ranges=network.get("allowed_ranges", []),
            network_allowed_endpoints=network.get("allowed_endpoints", []),
            network_blocked_ports=network.get("blocked_ports", []),
            allow_dns=network.get("allow_dns", False),
            dns_allowlist=network.get("dns_allowlist", []),
            filesystem_allowed_paths=allowed_paths,
            filesystem_denied_paths=denied_paths,
            commands_allowed=commands.get("allowed", list(DEFAULT_ALLOWED_COMMANDS)),
            commands_blocked=commands.get("blocked", []),
            max_file_size=limits.get("max_file_size", MAX_FILE_SIZE),
            max_command_output=limits.get("max_command_output", MAX_COMMAND_OUTPUT),
            max_directory_items=limits.get("max_directory_items", MAX_DIRECTORY_ITEMS),
            max_response_size=limits.get("max_response_size", 1024 * 1024),
            tool_timeout=tools.get("timeout", 30),
            validate_arguments=tools.get("validate_arguments", True),
            audit_log_file=log_file,
        )

    def is_port_blocked(self, port: int) -> bool:
        """Check if a port is in the blocked list.

        Args:
            port: Port number to check.

        Returns:
            True if the port is blocked, False otherwise.
        """
        return port in self.network_blocked_ports

    def is_command_allowed(self, command: str) -> bool:
        """Check if a base command is allowed and not blocked.

        Args:
            command: Command name to check (no arguments).

        Returns:
            True if the command may run, False otherwise.
        """
        if command in self.commands_blocked:
            return False
        return command in self.commands_allowed

    def is_endpoint_allowed(self, host: str, port: int) -> bool:
        """Check if an external endpoint is explicitly allowed.

        Args:
            host: Hostname to check.
            port: Port number to check.

        Returns:
            True if the endpoint is in the allowlist, False otherwise.
        """
        for endpoint in self.network_allowed_endpoints:
            if endpoint.get("host") == host and port in endpoint.get("ports", []):
                return True
        return False

    def is_dns_allowed(self, hostname: str) -> bool:
        """Check if DNS resolution is allowed for a hostname.

        Args:
            hostname: Hostname to check.

        Returns:
            True if DNS resolution is allowed, False otherwise.
        """
        if not self.allow_dns:
            return False
        return hostname in self.dns_allowlist
