"""Audit trail for tool executions.

Writes one JSON object per line for each tool request and its outcome.
Sensitive argument values are redacted before they reach the file.
"""

from __future__ import annotations

import json
import re
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Patterns for sensitive argument keys
SENSITIVE_PATTERNS = [
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"api[_-]?key", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"auth", re.IGNORECASE),
    re.compile(r"credential", re.IGNORECASE),
    re.compile(r"private[_-]?key", re.IGNORECASE),
    re.compile(r"^dsn$", re.IGNORECASE),
]


def _is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    return any(pattern.search(key) for pattern in SENSITIVE_PATTERNS)


def _sanitize_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    """Sanitize arguments by redacting sensitive values.

    Args:
        arguments: Original arguments dictionary.

    Returns:
        New dictionary with sensitive values redacted.
    """
    sanitized = {}
    for key, value in arguments.items():
        if _is_sensitive_key(key):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_arguments(value)
        else:
            sanitized[key] = value
    return sanitized


def _get_timestamp() -> str:
    """Get current UTC timestamp in ISO 8601 format."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class AuditLogger:
    """Append-only audit logger with JSON Lines format.

    Safe to share between connection threads; each line is written and
    flushed under a lock.
    """

    def __init__(self, log_path: Path) -> None:
        """Initialize the audit logger.

        Args:
            log_path: Path to the audit log file.
        """
        self._log_path = log_path
        self._lock = threading.Lock()
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(log_path, "a", encoding="utf-8")  # noqa: SIM115

    @property
    def path(self) -> Path:
        return self._log_path

    def _write_line(self, data: dict[str, Any]) -> None:
        line = json.dumps(data, default=str)
        with self._lock:
            if self._file.closed:
                return
            self._file.write(line + "\n")
            self._file.flush()

    def log_request(self, request_id: str, tool_name: str, arguments: dict[str, Any]) -> None:
        """Log an incoming tool request.

        Args:
            request_id: Unique identifier for this request.
            tool_name: Name of the tool being invoked.
            arguments: Tool arguments (will be sanitized).
        """
        self._write_line(
            {
                "type": "request",
                "timestamp": _get_timestamp(),
                "request_id": request_id,
                "tool_name": tool_name,
                "arguments": _sanitize_arguments(arguments),
            }
        )

    def log_response(
        self,
        request_id: str,
        status: str,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        """Log the outcome of a tool request.

        Args:
            request_id: Request identifier to correlate with.
            status: Result status (success, error, or failure).
            duration_ms: Execution time in milliseconds.
            error: Error message when the call did not succeed.
        """
        event: dict[str, Any] = {
            "type": "response",
            "timestamp": _get_timestamp(),
            "request_id": request_id,
            "result_status": status,
            "execution_time_ms": duration_ms,
        }
        if error is not None:
            event["error"] = error
        self._write_line(event)

    def close(self) -> None:
        """Close the log file."""
        with self._lock:
            if not self._file.closed:
                self._file.close()

    def __enter__(self) -> AuditLogger:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
