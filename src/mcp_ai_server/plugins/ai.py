"""Model-backed tools: chat, SQL generation and data analysis.

Provider calls are retried with a linear backoff. Generated SQL is only ever
run through the database plugin's read-only query path.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

from mcp_ai_server.config import AISettings
from mcp_ai_server.plugins.ai_providers import AIProvider, AIProviderError, create_providers
from mcp_ai_server.plugins.base import (
    PluginBase,
    ToolDefinition,
    ToolError,
    ToolResult,
    optional_int,
    optional_str,
    require_str,
)
from mcp_ai_server.plugins.database import DatabaseToolsPlugin

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = ("summary", "insights", "recommendations", "detailed")

ANALYSIS_INSTRUCTIONS = {
    "summary": "Summarize the key information in the following data.",
    "insights": "Analyze the following data and describe notable patterns and findings.",
    "recommendations": "Analyze the following data and give concrete recommendations.",
    "detailed": (
        "Give a detailed analysis of the following data, covering statistics, "
        "trends and what they mean in practice."
    ),
}

SQL_GENERATION_PROMPT = """Write one SQL query for the following request.

Request: {description}
{table_context}
Rules:
1. Reply with the SQL statement only, no explanation.
2. Use standard SQLite syntax.
3. Only read data: the statement must be a SELECT.
4. Add LIMIT 100 unless the request asks for a specific number of rows.

SQL:"""

SQL_MAX_TOKENS = 500
SQL_TEMPERATURE = 0.1

FORBIDDEN_SQL_KEYWORDS = (
    "DROP",
    "DELETE",
    "TRUNCATE",
    "ALTER",
    "INSERT",
    "UPDATE",
    "CREATE",
    "ATTACH",
    "DETACH",
    "PRAGMA",
    "REPLACE INTO",
)

_FENCE_RE = re.compile(r"```(?:sql)?\s*\n?(.*?)```", re.IGNORECASE | re.DOTALL)
_STATEMENT_START_RE = re.compile(r"\b(SELECT|WITH)\b", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n\s*\n")


def extract_sql(response: str) -> str:
    """Pull a single SQL statement out of a model response.

    A fenced code block is preferred; otherwise the text from the first
    SELECT or WITH keyword is taken. The statement ends at the first
    semicolon, which is kept.

    Returns:
        The statement, or an empty string if none was found.
    """
    match = _FENCE_RE.search(response)
    candidate = match.group(1) if match else response

    start = _STATEMENT_START_RE.search(candidate)
    if start is None:
        return ""
    sql = candidate[start.start() :]

    end = sql.find(";")
    if end != -1:
        sql = sql[: end + 1]
    return " ".join(sql.split())


def validate_generated_sql(sql: str) -> None:
    """Reject generated SQL that is not a single read-only query.

    Raises:
        ToolError: If the statement could modify data or schema.
    """
    upper = sql.upper()
    if not upper.startswith(("SELECT", "WITH")):
        raise ToolError("Generated SQL is not a SELECT query")
    for keyword in FORBIDDEN_SQL_KEYWORDS:
        pattern = r"\s+".join(keyword.split())
        if re.search(rf"\b{pattern}\b", upper):
            raise ToolError(f"Generated SQL contains forbidden keyword {keyword}")
    if ";" in sql.rstrip().rstrip(";"):
        raise ToolError("Generated SQL contains more than one statement")


def clean_response(text: str) -> str:
    """Trim a model response and collapse runs of blank lines."""
    return _BLANK_LINES_RE.sub("\n\n", text.strip()).strip()


class AIToolsPlugin(PluginBase):
    """Provides ai_chat, ai_generate_sql, ai_analyze_data and ai_query_with_analysis."""

    def __init__(
        self,
        settings: AISettings | None = None,
        database: DatabaseToolsPlugin | None = None,
        providers: dict[str, AIProvider] | None = None,
        retry_delay: float = 2.0,
    ) -> None:
        """Initialize the plugin.

        Args:
            settings: AI settings; enabled providers are created from them
                unless ``providers`` is given.
            database: Database plugin used by ai_query_with_analysis and for
                table names in SQL prompts.
            providers: Pre-built providers keyed by name.
            retry_delay: Base delay between retries in seconds.
        """
        self._settings = settings or AISettings()
        self._database = database
        self._providers = providers if providers is not None else create_providers(self._settings)
        self._retry_delay = retry_delay

    @property
    def name(self) -> str:
        """Return plugin identifier."""
        return "ai"

    @property
    def version(self) -> str:
        """Return plugin version."""
        return "1.0.0"

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    def get_tools(self) -> list[ToolDefinition]:
        """Return available tools."""
        available = ", ".join(self._providers) or "none enabled"
        provider = {
            "type": "string",
            "description": f"Provider to use ({available})",
            "default": self._settings.default_provider,
        }
        model = {"type": "string", "description": "Model name; defaults to the provider's"}
        analysis_type = {
            "type": "string",
            "enum": list(ANALYSIS_TYPES),
            "default": "summary",
        }
        alias = {"type": "string", "description": "Database connection alias"}
        table_name = {"type": "string", "description": "Table to query"}
        return [
            ToolDefinition(
                name="ai_chat",
                description="Ask a language model a question",
                input_schema={
                    "type": "object",
                    "properties": {
                        "prompt": {"type": "string", "description": "Question or instruction"},
                        "provider": provider,
                        "model": model,
                        "max_tokens": {
                            "type": "integer",
                            "minimum": 1,
                            "default": self._settings.max_tokens,
                        },
                        "temperature": {
                            "type": "number",
                            "minimum": 0,
                            "default": self._settings.temperature,
                        },
                    },
                    "required": ["prompt"],
                },
            ),
            ToolDefinition(
                name="ai_generate_sql",
                description="Generate a read-only SQL query from a description",
                input_schema={
                    "type": "object",
                    "properties": {
                        "description": {"type": "string", "description": "What to query"},
                        "table_name": table_name,
                        "alias": alias,
                        "provider": provider,
                        "model": model,
                    },
                    "required": ["description"],
                },
            ),
            ToolDefinition(
                name="ai_analyze_data",
                description="Analyze data with a language model",
                input_schema={
                    "type": "object",
                    "properties": {
                        "data": {"type": "string", "description": "Data to analyze"},
                        "analysis_type": analysis_type,
                        "provider": provider,
                        "model": model,
                    },
                    "required": ["data"],
                },
            ),
            ToolDefinition(
                name="ai_query_with_analysis",
                description="Generate a query, run it, and analyze the rows",
                input_schema={
                    "type": "object",
                    "properties": {
                        "description": {"type": "string", "description": "What to query"},
                        "alias": alias,
                        "analysis_type": analysis_type,
                        "table_name": table_name,
                        "limit": {"type": "integer", "minimum": 1},
                        "provider": provider,
                        "model": model,
                    },
                    "required": ["description", "alias"],
                },
            ),
        ]

    def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute an AI tool."""
        if tool_name == "ai_chat":
            return self._chat(arguments)
        if tool_name == "ai_generate_sql":
            return self._json_result(self._generate_sql(arguments))
        if tool_name == "ai_analyze_data":
            return self._analyze_data(arguments)
        if tool_name == "ai_query_with_analysis":
            return self._query_with_analysis(arguments)

        raise ToolError(f"Unknown tool: {tool_name}")

    def cleanup(self) -> None:
        """Close provider HTTP clients."""
        for provider in self._providers.values():
            provider.close()

    @staticmethod
    def _json_result(data: dict[str, Any]) -> ToolResult:
        return ToolResult.text(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def _select_provider(self, arguments: dict[str, Any]) -> tuple[AIProvider, str]:
        name = optional_str(arguments, "provider") or self._settings.default_provider
        provider = self._providers.get(name)
        if provider is None:
            raise ToolError(f"AI provider '{name}' is not available or not enabled")

        model = optional_str(arguments, "model") or provider.default_model
        if not model:
            raise ToolError(f"No model given and provider '{name}' has no default model")
        return provider, model

    def _complete(
        self,
        provider: AIProvider,
        model: str,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        max_tokens = max_tokens or self._settings.max_tokens
        temperature = self._settings.temperature if temperature is None else temperature
        attempts = max(1, self._settings.max_retries + 1)
        last_error: AIProviderError | None = None

        for attempt in range(attempts):
            if attempt:
                logger.info("Retrying %s call (%d/%d)", provider.name, attempt, attempts - 1)
                time.sleep(attempt * self._retry_delay)
            try:
                return provider.complete(model, prompt, max_tokens, temperature)
            except AIProviderError as e:
                logger.warning(
                    "%s call failed (attempt %d/%d): %s", provider.name, attempt + 1, attempts, e
                )
                last_error = e

        raise ToolError(
            f"AI call failed after {attempts} attempts: {last_error}"
        ) from last_error

    def _chat(self, arguments: dict[str, Any]) -> ToolResult:
        prompt = require_str(arguments, "prompt")
        provider, model = self._select_provider(arguments)
        max_tokens = optional_int(arguments, "max_tokens", self._settings.max_tokens)

        temperature = arguments.get("temperature", self._settings.temperature)
        if isinstance(temperature, bool) or not isinstance(temperature, int | float):
            raise ToolError("'temperature' must be a number")

        return ToolResult.text(
            self._complete(provider, model, prompt, max_tokens, float(temperature))
        )

    def _table_context(self, table_name: str | None, alias: str | None) -> str:
        if table_name:
            return f"Table: {table_name}\n"
        if alias and self._database is not None:
            tables = self._database.table_names(alias)
            if tables:
                return f"Available tables: {', '.join(tables)}\n"
        return ""

    def _generate_sql(self, arguments: dict[str, Any]) -> dict[str, Any]:
        description = require_str(arguments, "description")
        table_name = optional_str(arguments, "table_name")
        alias = optional_str(arguments, "alias")
        provider, model = self._select_provider(arguments)

        prompt = SQL_GENERATION_PROMPT.format(
            description=description,
            table_context=self._table_context(table_name, alias),
        )
        response = self._complete(provider, model, prompt, SQL_MAX_TOKENS, SQL_TEMPERATURE)

        sql = extract_sql(response)
        if not sql:
            raise ToolError("Could not find a SQL statement in the model response")
        validate_generated_sql(sql)

        return {
            "tool": "ai_generate_sql",
            "status": "success",
            "description": description,
            "table_name": table_name,
            "provider": provider.name,
            "model": model,
            "sql": sql,
        }

    def _analysis_type(self, arguments: dict[str, Any]) -> str:
        analysis_type = optional_str(arguments, "analysis_type", "summary") or "summary"
        if analysis_type not in ANALYSIS_TYPES:
            raise ToolError(
                f"Unsupported analysis type: {analysis_type} "
                f"(expected one of {', '.join(ANALYSIS_TYPES)})"
            )
        return analysis_type

    def _analyze(self, provider: AIProvider, model: str, analysis_type: str, data: str) -> str:
        prompt = f"{ANALYSIS_INSTRUCTIONS[analysis_type]}\n\nData:\n{data}"
        return clean_response(self._complete(provider, model, prompt))

    def _analyze_data(self, arguments: dict[str, Any]) -> ToolResult:
        data = require_str(arguments, "data")
        analysis_type = self._analysis_type(arguments)
        provider, model = self._select_provider(arguments)

        return self._json_result(
            {
                "tool": "ai_analyze_data",
                "status": "success",
                "analysis_type": analysis_type,
                "provider": provider.name,
                "model": model,
                "analysis": self._analyze(provider, model, analysis_type, data),
            }
        )

    def _query_with_analysis(self, arguments: dict[str, Any]) -> ToolResult:
        if self._database is None:
            raise ToolError("Database tools are not available")

        alias = require_str(arguments, "alias")
        analysis_type = self._analysis_type(arguments)
        limit = optional_int(arguments, "limit", self._database.max_rows)

        started = time.monotonic()
        generated = self._generate_sql(arguments)
        query = self._database.run_query(alias, generated["sql"], limit)
        if not query["rows"]:
            raise ToolError(f"Query returned no rows: {generated['sql']}")

        provider, model = self._select_provider(arguments)
        rows_json = json.dumps(query["rows"], ensure_ascii=False, default=str)
        analysis = self._analyze(provider, model, analysis_type, rows_json)
        logger.info(
            "ai_query_with_analysis finished in %.1fs (%d rows)",
            time.monotonic() - started,
            query["row_count"],
        )

        return self._json_result(
            {
                "tool": "ai_query_with_analysis",
                "status": "success",
                "description": generated["description"],
                "analysis_type": analysis_type,
                "generated_sql": generated["sql"],
                "columns": query["columns"],
                "rows": query["rows"],
                "row_count": query["row_count"],
                "limited": query["limited"],
                "analysis": analysis,
                "provider": provider.name,
                "model": model,
            }
        )
