"""SQLite database tools.

Connections are opened under an alias, either from configuration at startup
or with ``db_connect``, and shared by every session. ``db_query`` accepts
read-only statements only; ``db_execute`` runs everything else except
schema-destroying statements.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any

from mcp_ai_server.config import DatabaseSettings
from mcp_ai_server.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolError,
    ToolResult,
    optional_int,
    optional_str,
    require_str,
)
from mcp_ai_server.security.validator import InputValidator, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_DRIVERS = ("sqlite", "sqlite3")

READ_ONLY_PREFIXES = ("select", "with", "pragma", "explain")
BLOCKED_EXECUTE_PREFIXES = ("truncate", "alter")

MEMORY_DSN = ":memory:"

READ_ONLY_ACTIONS = frozenset(
    {sqlite3.SQLITE_SELECT, sqlite3.SQLITE_READ, sqlite3.SQLITE_FUNCTION, sqlite3.SQLITE_RECURSIVE}
)
READ_ONLY_PRAGMAS = frozenset(
    {
        "table_info",
        "table_xinfo",
        "table_list",
        "index_list",
        "index_info",
        "index_xinfo",
        "foreign_key_list",
        "database_list",
        "collation_list",
    }
)


@dataclass
class _Connection:
    alias: str
    driver: str
    dsn: str
    conn: sqlite3.Connection


def _statement_keyword(sql: str) -> str:
    stripped = sql.strip().lower()
    return stripped.split(None, 1)[0] if stripped else ""


def _cell(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _read_only_authorizer(
    action: int, arg1: str | None, arg2: str | None, db_name: str | None, source: str | None
) -> int:
    """SQLite authorizer that denies every operation that could write.

    Writing PRAGMAs and data-modifying statements hidden behind a WITH clause
    are refused when the statement is prepared, before anything runs.
    """
    if action in READ_ONLY_ACTIONS:
        return sqlite3.SQLITE_OK
    if action == sqlite3.SQLITE_PRAGMA and (arg1 or "").lower() in READ_ONLY_PRAGMAS:
        return sqlite3.SQLITE_OK
    return sqlite3.SQLITE_DENY


class DatabaseToolsPlugin(PluginBase):
    """Provides db_connect, db_query, db_execute and db_list_connections."""

    def __init__(
        self,
        settings: DatabaseSettings | None = None,
        validator: InputValidator | None = None,
    ) -> None:
        """Initialize the plugin and open configured connections.

        A configured connection that cannot be opened is logged and skipped.

        Args:
            settings: Database settings; connections listed there are opened.
            validator: When given, file DSNs must pass the filesystem policy.
        """
        self._settings = settings or DatabaseSettings()
        self._validator = validator
        self._connections: dict[str, _Connection] = {}
        self._lock = threading.Lock()

        for entry in self._settings.connections:
            try:
                self.connect(entry.alias, entry.dsn, entry.driver)
            except ToolError as e:
                logger.warning("Could not open database connection '%s': %s", entry.alias, e)

    @property
    def name(self) -> str:
        """Return plugin identifier."""
        return "database"

    @property
    def version(self) -> str:
        """Return plugin version."""
        return "1.0.0"

    @property
    def max_rows(self) -> int:
        return self._settings.max_rows

    def aliases(self) -> list[str]:
        """Return the aliases of open connections."""
        with self._lock:
            return list(self._connections)

    def get_tools(self) -> list[ToolDefinition]:
        """Return available tools."""
        alias = {"type": "string", "description": "Connection alias"}
        return [
            ToolDefinition(
                name="db_connect",
                description="Open a SQLite database under an alias",
                input_schema={
                    "type": "object",
                    "properties": {
                        "alias": alias,
                        "dsn": {
                            "type": "string",
                            "description": "Database file path, or :memory:",
                        },
                        "driver": {
                            "type": "string",
                            "enum": list(SUPPORTED_DRIVERS),
                            "default": "sqlite",
                        },
                    },
                    "required": ["alias", "dsn"],
                },
            ),
            ToolDefinition(
                name="db_query",
                description="Run a read-only query and return rows as JSON",
                input_schema={
                    "type": "object",
                    "properties": {
                        "alias": alias,
                        "sql": {"type": "string", "description": "SELECT statement"},
                        "limit": {
                            "type": "integer",
                            "minimum": 1,
                            "description": "Maximum rows to return",
                            "default": self._settings.max_rows,
                        },
                    },
                    "required": ["alias", "sql"],
                },
            ),
            ToolDefinition(
                name="db_execute",
                description="Run an INSERT, UPDATE, DELETE or DDL statement",
                input_schema={
                    "type": "object",
                    "properties": {
                        "alias": alias,
                        "sql": {"type": "string", "description": "Statement to execute"},
                    },
                    "required": ["alias", "sql"],
                },
            ),
            ToolDefinition(
                name="db_list_connections",
                description="List open database connections",
                input_schema={"type": "object", "properties": {}},
            ),
        ]

    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a database tool."""
        if tool_name == "db_connect":
            alias = require_str(arguments, "alias")
            dsn = require_str(arguments, "dsn")
            driver = optional_str(arguments, "driver", "sqlite") or "sqlite"
            self.connect(alias, dsn, driver)
            return ToolResult.text(f"Connected to {driver} database as '{alias}'")

        if tool_name == "db_query":
            limit = optional_int(arguments, "limit", self._settings.max_rows)
            result = self.run_query(
                require_str(arguments, "alias"), require_str(arguments, "sql"), limit
            )
            return ToolResult.text(json.dumps(result, indent=2, ensure_ascii=False, default=str))

        if tool_name == "db_execute":
            alias = require_str(arguments, "alias")
            result = self.run_execute(alias, require_str(arguments, "sql"))
            return ToolResult.text(json.dumps(result, indent=2))

        if tool_name == "db_list_connections":
            with self._lock:
                entries = [
                    {"alias": c.alias, "driver": c.driver, "dsn": c.dsn}
                    for c in self._connections.values()
                ]
            return ToolResult.text(json.dumps(entries, indent=2))

        raise ToolError(f"Unknown tool: {tool_name}")

    def connect(self, alias: str, dsn: str, driver: str = "sqlite") -> None:
        """Open a connection under ``alias``, replacing any previous one.

        Raises:
            ToolError: If the driver is unsupported or the database cannot be opened.
        """
        if not alias:
            raise ToolError("'alias' must not be empty")
        if driver not in SUPPORTED_DRIVERS:
            raise ToolError(
                f"Unsupported database driver: {driver} "
                f"(supported: {', '.join(SUPPORTED_DRIVERS)})"
            )

        if dsn != MEMORY_DSN and self._validator is not None:
            try:
                dsn = self._validator.validate_path(dsn)
            except ValidationError as e:
                raise ToolError(str(e)) from e

        try:
            conn = sqlite3.connect(dsn, check_same_thread=False)
            conn.execute("SELECT 1")
        except sqlite3.Error as e:
            raise ToolError(f"Cannot open database {dsn}: {e}") from e

        with self._lock:
            previous = self._connections.pop(alias, None)
            self._connections[alias] = _Connection(alias, driver, dsn, conn)
        if previous is not None:
            previous.conn.close()
        logger.info("Opened database connection '%s' (%s)", alias, driver)

    def _get(self, alias: str) -> _Connection:
        connection = self._connections.get(alias)
        if connection is None:
            raise ToolError(f"No database connection with alias '{alias}'")
        return connection

    def run_query(self, alias: str, sql: str, limit: int | None = None) -> dict[str, Any]:
        """Run a read-only statement.

        SQLite itself enforces the read-only guarantee through an authorizer,
        so only reads, function calls and introspection PRAGMAs are allowed.

        Args:
            alias: Connection alias.
            sql: SELECT, WITH, PRAGMA or EXPLAIN statement.
            limit: Maximum rows to return; defaults to the configured maximum.

        Returns:
            Mapping with ``columns``, ``rows`` (one mapping per row),
            ``row_count`` and ``limited`` (more rows were available).

        Raises:
            ToolError: If the statement is not read-only or fails.
        """
        if _statement_keyword(sql) not in READ_ONLY_PREFIXES:
            raise ToolError("db_query only accepts SELECT, WITH, PRAGMA or EXPLAIN statements")
        limit = limit if limit and limit > 0 else self._settings.max_rows

        with self._lock:
            connection = self._get(alias)
            connection.conn.set_authorizer(_read_only_authorizer)
            try:
                cursor = connection.conn.execute(sql)
                rows = cursor.fetchmany(limit + 1)
                columns = [column[0] for column in cursor.description or []]
                cursor.close()
            except sqlite3.Error as e:
                raise ToolError(f"Query failed: {e}") from e
            finally:
                connection.conn.set_authorizer(None)

        limited = len(rows) > limit
        rows = rows[:limit]
        return {
            "columns": columns,
            "rows": [
                {column: _cell(value) for column, value in zip(columns, row, strict=False)}
                for row in rows
            ],
            "row_count": len(rows),
            "limited": limited,
        }

    def run_execute(self, alias: str, sql: str) -> dict[str, Any]:
        """Run a modifying statement and commit it.

        Raises:
            ToolError: If the statement is blocked or fails.
        """
        keyword = _statement_keyword(sql)
        if keyword in BLOCKED_EXECUTE_PREFIXES:
            raise ToolError(f"{keyword.upper()} statements are not allowed")

        with self._lock:
            connection = self._get(alias)
            try:
                cursor = connection.conn.execute(sql)
                connection.conn.commit()
            except sqlite3.Error as e:
                connection.conn.rollback()
                raise ToolError(f"Statement failed: {e}") from e

        return {
            "rows_affected": cursor.rowcount,
            "last_insert_id": cursor.lastrowid,
            "status": "success",
        }

    def table_names(self, alias: str) -> list[str]:
        """Return the user tables of a connection."""
        result = self.run_query(
            alias,
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name",
            limit=1000,
        )
        return [row["name"] for row in result["rows"]]

    def cleanup(self) -> None:
        """Close every connection."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            try:
                connection.conn.close()
            except sqlite3.Error as e:
                logger.warning("Error closing database '%s': %s", connection.alias, e)
