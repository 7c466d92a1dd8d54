"""Input validation and sanitization for tool arguments.

Provides schema-based validation of tool arguments plus the path and
command checks the system tools run before touching the host.
"""

from __future__ import annotations

import fnmatch
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

if TYPE_CHECKING:
    from mcp_ai_server.security.policy import SecurityPolicy


class ValidationError(Exception):
    """Raised when input validation fails."""

    pass


# Patterns that indicate command chaining/substitution
DANGEROUS_PATTERNS = [
    re.compile(r";"),  # Command chaining
    re.compile(r"\|"),  # Pipes and OR chaining
    re.compile(r"&"),  # AND chaining and backgrounding
    re.compile(r"`"),  # Backtick substitution
    re.compile(r"\$\("),  # $() substitution
    re.compile(r"\$\{"),  # ${} substitution
    re.compile(r"[<>]"),  # Redirection
    re.compile(r"[\r\n]"),  # Embedded newlines
]


def sanitize_path(path: str, base_path: str | None = None) -> str:
    """Sanitize and resolve a file path.

    Args:
        path: Path to sanitize.
        base_path: Optional base path for resolving relative paths.

    Returns:
        Sanitized absolute path.

    Raises:
        ValidationError: If the path is invalid or contains traversal.
    """
    if not path:
        raise ValidationError("Path is empty")

    if "\x00" in path:
        raise ValidationError("Path contains null bytes")

    if ".." in Path(path).parts:
        raise ValidationError(f"Path traversal is not allowed: {path}")

    if path.startswith("~"):
        path = os.path.expanduser(path)

    if base_path and not os.path.isabs(path):
        resolved = Path(base_path) / path
    else:
        resolved = Path(path)

    try:
        # Resolve symlinks and normalize
        resolved = resolved.resolve()
    except (OSError, ValueError) as e:
        raise ValidationError(f"Invalid path: {e}") from e

    if base_path:
        base_resolved = Path(base_path).resolve()
        try:
            resolved.relative_to(base_resolved)
        except ValueError:
            raise ValidationError(f"Path traversal detected: {path} escapes {base_path}") from None

    return str(resolved)


def sanitize_command(command: str) -> str:
    """Sanitize a command name or command line.

    Args:
        command: Command to sanitize.

    Returns:
        Sanitized command.

    Raises:
        ValidationError: If the command contains dangerous patterns.
    """
    command = command.strip()
    if not command:
        raise ValidationError("Command is empty")

    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(command):
            raise ValidationError(
                f"Command contains blocked metacharacter/pattern: {pattern.pattern}"
            )

    return command


class InputValidator:
    """Validates and sanitizes tool inputs.

    Combines JSON Schema validation of tool arguments with policy checks
    for filesystem paths and commands.
    """

    def __init__(
        self,
        policy: SecurityPolicy,
        max_string_length: int = 1_000_000,
    ) -> None:
        """Initialize the validator.

        Args:
            policy: Security policy to enforce.
            max_string_length: Maximum allowed length of any string argument.
        """
        self._policy = policy
        self._max_string_length = max_string_length
        self._schema_validators: dict[str, Draft202012Validator] = {}

        # Pre-resolve allowed paths patterns for proper matching
        self._resolved_allowed_paths: list[str] = []
        for pattern in policy.filesystem_allowed_paths:
            if "**" in pattern:
                base, _, suffix = pattern.partition("**")
                try:
                    resolved_base = str(Path(base.rstrip("/")).resolve())
                    self._resolved_allowed_paths.append(resolved_base + "/**" + suffix)
                except (OSError, ValueError):
                    self._resolved_allowed_paths.append(pattern)
            else:
                try:
                    self._resolved_allowed_paths.append(str(Path(pattern).resolve()))
                except (OSError, ValueError):
                    self._resolved_allowed_paths.append(pattern)

    @property
    def policy(self) -> SecurityPolicy:
        """Return the policy this validator enforces."""
        return self._policy

    def _is_path_allowed(self, path: str) -> bool:
        """Check if a path is in the allowed list."""
        for pattern in self._resolved_allowed_paths:
            if fnmatch.fnmatch(path, pattern):
                return True
        return False

    def _is_path_denied(self, path: str) -> bool:
        """Check if a path matches a denied pattern."""
        for pattern in self._policy.filesystem_denied_paths:
            if fnmatch.fnmatch(path, pattern):
                return True
        return False

    def _check_string_lengths(self, value: Any, field: str) -> None:
        if isinstance(value, str):
            if len(value) > self._max_string_length:
                raise ValidationError(
                    f"Field '{field}' exceeds maximum length of {self._max_string_length}"
                )
        elif isinstance(value, dict):
            for key, item in value.items():
                self._check_string_lengths(item, f"{field}.{key}")
        elif isinstance(value, list):
            for i, item in enumerate(value):
                self._check_string_lengths(item, f"{field}[{i}]")

    def validate_path(self, path: str) -> str:
        """Validate a filesystem path against the policy.

        Args:
            path: Path supplied by the peer.

        Returns:
            The resolved absolute path.

        Raises:
            ValidationError: If the path is malformed, denied, or outside the
                allowed directories.
        """
        sanitized = sanitize_path(path)

        # Denied patterns take precedence
        if self._is_path_denied(sanitized):
            raise ValidationError(f"Path is denied by policy: {sanitized}")

        if self._policy.filesystem_allowed_paths and not self._is_path_allowed(sanitized):
            raise ValidationError(f"Path is not in allowed directories: {sanitized}")

        return sanitized

    def validate_command(self, command: str, args: list[str] | None = None) -> list[str]:
        """Validate a command and its arguments against the policy.

        Args:
            command: Base command name.
            args: Command arguments, passed to the process without a shell.

        Returns:
            The argv list to execute.

        Raises:
            ValidationError: If the command is blocked, not allowed, or any
                part contains shell metacharacters.
        """
        sanitized = sanitize_command(command)
        if len(sanitized.split()) != 1:
            raise ValidationError("Command must be a single program name; pass arguments in 'args'")

        if not self._policy.is_command_allowed(sanitized):
            raise ValidationError(f"Command is not allowed by policy: {sanitized}")

        argv = [sanitized]
        for arg in args or []:
            if not isinstance(arg, str):
                raise ValidationError("Command arguments must be strings")
            if "\x00" in arg:
                raise ValidationError("Command argument contains null bytes")
            argv.append(arg)
        return argv

    def validate_arguments(
        self, tool_name: str, schema: dict[str, Any], arguments: dict[str, Any]
    ) -> None:
        """Validate tool arguments against the tool's input schema.

        Args:
            tool_name: Name of the tool (for error messages and caching).
            schema: JSON Schema for the tool's input.
            arguments: Arguments to validate.

        Raises:
            ValidationError: If validation fails.
        """
        self._check_string_lengths(arguments, "arguments")

        validator = self._schema_validators.get(tool_name)
        if validator is None or validator.schema is not schema:
            try:
                Draft202012Validator.check_schema(schema)
            except SchemaError as e:
                raise ValidationError(f"Invalid schema for tool {tool_name}: {e.message}") from e
            validator = Draft202012Validator(schema)
            self._schema_validators[tool_name] = validator

        error = next(iter(validator.iter_errors(arguments)), None)
        if error is not None:
            path = ".".join(str(p) for p in error.path) if error.path else "root"
            raise ValidationError(f"Schema validation failed at '{path}': {error.message}")
