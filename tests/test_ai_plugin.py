"""Tests for the model-backed tools."""

import json
from collections.abc import Iterator

import pytest

from mcp_ai_server.config import AISettings, DatabaseConnectionSettings, DatabaseSettings
from mcp_ai_server.config import ProviderSettings
from mcp_ai_server.plugins.ai import (
    AIToolsPlugin,
    clean_response,
    extract_sql,
    validate_generated_sql,
)
from mcp_ai_server.plugins.ai_providers import AIProvider, AIProviderError
from mcp_ai_server.plugins.base import ToolError
from mcp_ai_server.plugins.database import DatabaseToolsPlugin


class ScriptedProvider(AIProvider):
    """Provider that replays scripted replies and records prompts."""

    def __init__(self, replies: list, model: str = "test-model") -> None:
        super().__init__(ProviderSettings(enabled=True, model=model))
        self.replies = list(replies)
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return "scripted"

    def complete(self, model: str, prompt: str, max_tokens: int, temperature: float) -> str:
        self.calls.append(
            {"model": model, "prompt": prompt, "max_tokens": max_tokens, "temperature": temperature}
        )
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def database() -> Iterator[DatabaseToolsPlugin]:
    plugin = DatabaseToolsPlugin(
        DatabaseSettings(connections=[DatabaseConnectionSettings("shop", ":memory:")])
    )
    plugin.run_execute("shop", "CREATE TABLE sales (region TEXT, amount INTEGER)")
    plugin.run_execute("shop", "INSERT INTO sales VALUES ('north', 10), ('south', 30)")
    yield plugin
    plugin.cleanup()


def _plugin(provider: ScriptedProvider, database=None, max_retries: int = 2) -> AIToolsPlugin:
    settings = AISettings(default_provider="scripted", max_retries=max_retries)
    return AIToolsPlugin(
        settings, database=database, providers={"scripted": provider}, retry_delay=0
    )


def _json(result) -> dict:
    return json.loads(result.content[0]["text"])


class TestExtractSql:
    """Tests for pulling SQL out of model replies."""

    def test_fenced_block(self):
        """Should prefer a fenced code block."""
        reply = "Here you go:\n```sql\nSELECT *\nFROM users\nLIMIT 5;\n```\nEnjoy!"
        assert extract_sql(reply) == "SELECT * FROM users LIMIT 5;"

    def test_plain_text(self):
        """Should start at the first SELECT or WITH keyword."""
        assert extract_sql("Sure! select name from users; -- done") == "select name from users;"

    def test_with_clause(self):
        """Should accept common table expressions."""
        assert extract_sql("WITH t AS (SELECT 1) SELECT * FROM t") == (
            "WITH t AS (SELECT 1) SELECT * FROM t"
        )

    def test_no_statement(self):
        """Should return an empty string when there is no query."""
        assert extract_sql("I cannot help with that.") == ""


class TestValidateGeneratedSql:
    """Tests for checks on generated SQL."""

    def test_accepts_select(self):
        """Should accept a single SELECT, including REPLACE() calls."""
        validate_generated_sql("SELECT REPLACE(name, 'a', 'b') FROM users LIMIT 100;")

    @pytest.mark.parametrize(
        ("sql", "message"),
        [
            ("DELETE FROM users", "not a SELECT"),
            ("SELECT * FROM users; DROP TABLE users", "forbidden keyword DROP"),
            ("WITH x AS (DELETE FROM t RETURNING *) SELECT * FROM x", "forbidden keyword DELETE"),
            ("SELECT 1; SELECT 2", "more than one statement"),
            ("WITH x AS (SELECT 1) REPLACE INTO t VALUES (9)", "forbidden keyword REPLACE INTO"),
            ("WITH x AS (SELECT 1) SELECT * FROM x; PRAGMA user_version = 1", "keyword PRAGMA"),
            ("PRAGMA user_version = 1", "not a SELECT"),
        ],
    )
    def test_rejects_unsafe_sql(self, sql: str, message: str):
        """Should reject anything but one read-only statement."""
        with pytest.raises(ToolError, match=message):
            validate_generated_sql(sql)

    def test_keywords_match_whole_words(self):
        """Should not flag column names that contain a keyword."""
        validate_generated_sql("SELECT updated_at, created_by FROM audit")


def test_clean_response():
    """Should trim and collapse blank lines."""
    assert clean_response("\n\n  One\n\n\n\nTwo  \n") == "One\n\nTwo"


class TestAIChat:
    """Tests for ai_chat."""

    def test_chat(self):
        """Should return the completion using default settings."""
        provider = ScriptedProvider(["Hello!"])
        result = _plugin(provider).execute("ai_chat", {"prompt": "Hi"})
        assert result.content[0]["text"] == "Hello!"
        assert provider.calls == [
            {"model": "test-model", "prompt": "Hi", "max_tokens": 1000, "temperature": 0.7}
        ]

    def test_chat_overrides(self):
        """Should honour model, max_tokens and temperature arguments."""
        provider = ScriptedProvider(["ok"])
        _plugin(provider).execute(
            "ai_chat", {"prompt": "Hi", "model": "big", "max_tokens": 10, "temperature": 0}
        )
        assert provider.calls[0]["model"] == "big"
        assert provider.calls[0]["max_tokens"] == 10
        assert provider.calls[0]["temperature"] == 0.0

    def test_unknown_provider(self):
        """Should name the missing provider."""
        with pytest.raises(ToolError, match="AI provider 'openai' is not available"):
            _plugin(ScriptedProvider([])).execute("ai_chat", {"prompt": "x", "provider": "openai"})

    def test_no_model(self):
        """Should fail when neither the call nor the provider names a model."""
        provider = ScriptedProvider([], model="")
        with pytest.raises(ToolError, match="No model given"):
            _plugin(provider).execute("ai_chat", {"prompt": "x"})

    def test_retries_then_succeeds(self):
        """Should retry failed provider calls."""
        provider = ScriptedProvider([AIProviderError("busy"), "finally"])
        result = _plugin(provider).execute("ai_chat", {"prompt": "x"})
        assert result.content[0]["text"] == "finally"
        assert len(provider.calls) == 2

    def test_gives_up_after_max_retries(self):
        """Should report the last error after all attempts fail."""
        provider = ScriptedProvider([AIProviderError(f"fail {i}") for i in range(3)])
        with pytest.raises(ToolError, match="AI call failed after 3 attempts: fail 2"):
            _plugin(provider).execute("ai_chat", {"prompt": "x"})

    def test_no_retries(self):
        """Should make a single attempt when retries are disabled."""
        provider = ScriptedProvider([AIProviderError("down")])
        with pytest.raises(ToolError, match="after 1 attempts"):
            _plugin(provider, max_retries=0).execute("ai_chat", {"prompt": "x"})


class TestAIGenerateSql:
    """Tests for ai_generate_sql."""

    def test_generates_sql(self, database: DatabaseToolsPlugin):
        """Should return the extracted statement with table context."""
        provider = ScriptedProvider(["```sql\nSELECT region FROM sales;\n```"])
        result = _json(
            _plugin(provider, database).execute(
                "ai_generate_sql", {"description": "all regions", "alias": "shop"}
            )
        )
        assert result == {
            "tool": "ai_generate_sql",
            "status": "success",
            "description": "all regions",
            "table_name": None,
            "provider": "scripted",
            "model": "test-model",
            "sql": "SELECT region FROM sales;",
        }
        prompt = provider.calls[0]["prompt"]
        assert "Request: all regions" in prompt
        assert "Available tables: sales" in prompt
        assert provider.calls[0]["temperature"] == 0.1

    def test_table_name_in_prompt(self):
        """Should mention an explicit table name."""
        provider = ScriptedProvider(["SELECT * FROM orders"])
        _plugin(provider).execute(
            "ai_generate_sql", {"description": "orders", "table_name": "orders"}
        )
        assert "Table: orders" in provider.calls[0]["prompt"]

    def test_rejects_unsafe_generation(self):
        """Should refuse generated statements that modify data."""
        provider = ScriptedProvider(
            ["WITH gone AS (DELETE FROM users RETURNING *) SELECT * FROM gone"]
        )
        with pytest.raises(ToolError, match="forbidden keyword DELETE"):
            _plugin(provider).execute("ai_generate_sql", {"description": "x"})

    def test_no_sql_in_reply(self):
        """Should fail when the reply has no query."""
        provider = ScriptedProvider(["Sorry, I can't."])
        with pytest.raises(ToolError, match="Could not find a SQL statement"):
            _plugin(provider).execute("ai_generate_sql", {"description": "x"})


class TestAIAnalyzeData:
    """Tests for ai_analyze_data."""

    def test_analyze(self):
        """Should return the cleaned analysis."""
        provider = ScriptedProvider(["  Sales rose.\n\n\n\nNorth lags.  "])
        result = _json(
            _plugin(provider).execute(
                "ai_analyze_data", {"data": "a,b\n1,2", "analysis_type": "insights"}
            )
        )
        assert result["analysis"] == "Sales rose.\n\nNorth lags."
        assert result["analysis_type"] == "insights"
        assert "notable patterns" in provider.calls[0]["prompt"]
        assert provider.calls[0]["prompt"].endswith("Data:\na,b\n1,2")

    def test_default_analysis_type(self):
        """Should default to a summary."""
        provider = ScriptedProvider(["ok"])
        result = _json(_plugin(provider).execute("ai_analyze_data", {"data": "x"}))
        assert result["analysis_type"] == "summary"

    def test_unsupported_analysis_type(self):
        """Should list the valid analysis types."""
        with pytest.raises(ToolError, match="Unsupported analysis type: poetry"):
            _plugin(ScriptedProvider([])).execute(
                "ai_analyze_data", {"data": "x", "analysis_type": "poetry"}
            )


class TestAIQueryWithAnalysis:
    """Tests for ai_query_with_analysis."""

    def test_query_and_analyze(self, database: DatabaseToolsPlugin):
        """Should generate SQL, run it and analyze the rows."""
        provider = ScriptedProvider(
            ["SELECT region, amount FROM sales ORDER BY amount DESC", "South leads."]
        )
        result = _json(
            _plugin(provider, database).execute(
                "ai_query_with_analysis", {"description": "sales by region", "alias": "shop"}
            )
        )
        assert result["generated_sql"] == "SELECT region, amount FROM sales ORDER BY amount DESC"
        assert result["columns"] == ["region", "amount"]
        assert result["rows"] == [
            {"region": "south", "amount": 30},
            {"region": "north", "amount": 10},
        ]
        assert result["row_count"] == 2
        assert result["limited"] is False
        assert result["analysis"] == "South leads."
        assert '"region": "south"' in provider.calls[1]["prompt"]

    def test_no_rows(self, database: DatabaseToolsPlugin):
        """Should fail when the generated query returns nothing."""
        provider = ScriptedProvider(["SELECT * FROM sales WHERE amount > 1000"])
        with pytest.raises(ToolError, match="Query returned no rows"):
            _plugin(provider, database).execute(
                "ai_query_with_analysis", {"description": "big sales", "alias": "shop"}
            )

    @pytest.mark.parametrize(
        "reply",
        [
            "WITH x AS (SELECT 1) REPLACE INTO sales VALUES ('west', 99)",
            "WITH x AS (SELECT 1) DELETE FROM sales",
        ],
    )
    def test_refuses_writes(self, database: DatabaseToolsPlugin, reply: str):
        """Should never run generated statements that change data."""
        provider = ScriptedProvider([reply])
        with pytest.raises(ToolError, match="forbidden keyword"):
            _plugin(provider, database).execute(
                "ai_query_with_analysis", {"description": "x", "alias": "shop"}
            )
        assert database.run_query("shop", "SELECT * FROM sales", limit=10)["row_count"] == 2
        assert len(provider.calls) == 1

    def test_without_database(self):
        """Should fail when no database plugin is configured."""
        with pytest.raises(ToolError, match="Database tools are not available"):
            _plugin(ScriptedProvider([])).execute(
                "ai_query_with_analysis", {"description": "x", "alias": "shop"}
            )


class TestAIToolsPlugin:
    """Tests for plugin metadata."""

    def test_tools_and_providers(self):
        """Should declare four tools and report its providers."""
        plugin = _plugin(ScriptedProvider([]))
        assert [tool.name for tool in plugin.get_tools()] == [
            "ai_chat",
            "ai_generate_sql",
            "ai_analyze_data",
            "ai_query_with_analysis",
        ]
        assert plugin.provider_names == ["scripted"]
        plugin.cleanup()

    def test_no_enabled_providers(self):
        """Should still declare its tools when nothing is configured."""
        plugin = AIToolsPlugin(AISettings())
        assert plugin.provider_names == []
        with pytest.raises(ToolError, match="not available"):
            plugin.execute("ai_chat", {"prompt": "x"})
