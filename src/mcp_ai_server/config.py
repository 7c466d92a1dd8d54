"""Server configuration loaded from YAML.

A configuration file has a required ``version`` and optional ``server``,
``security``, ``database``, ``ai`` and ``logging`` sections. Any string in
the file may reference environment variables as ``${NAME}``; API keys are
normally supplied that way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from mcp_ai_server.security.policy import SecurityPolicy, expand_env_vars

logger = logging.getLogger(__name__)

VALID_MODES = ("stdio", "websocket")

DEFAULT_PROVIDER_URLS = {
    "ollama": "http://localhost:11434",
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
}


class ConfigLoadError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def _expand(value: Any) -> Any:
    """Recursively expand ${VAR} references in strings."""
    if isinstance(value, str):
        return expand_env_vars(value)
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand(item) for item in value]
    return value


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigLoadError(f"Config section '{name}' must be a mapping")
    return section


@dataclass
class ServerSettings:
    """Identity and listening address of the server."""

    name: str = "mcp-ai-server"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8081
    mode: str = "stdio"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerSettings:
        settings = cls(
            name=str(data.get("name", cls.name)),
            version=str(data.get("version", cls.version)),
            host=str(data.get("host", cls.host)),
            port=int(data.get("port", cls.port)),
            mode=str(data.get("mode", cls.mode)),
        )
        if settings.mode not in VALID_MODES:
            raise ConfigLoadError(
                f"server.mode must be one of {', '.join(VALID_MODES)}, got '{settings.mode}'"
            )
        return settings


@dataclass
class DatabaseConnectionSettings:
    """A database connection opened at startup."""

    alias: str
    dsn: str
    driver: str = "sqlite"


@dataclass
class DatabaseSettings:
    """Database tool settings."""

    connections: list[DatabaseConnectionSettings] = field(default_factory=list)
    max_rows: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatabaseSettings:
        connections = []
        for entry in data.get("connections") or []:
            if not isinstance(entry, dict) or "alias" not in entry or "dsn" not in entry:
                raise ConfigLoadError("Each database connection needs 'alias' and 'dsn'")
            connections.append(
                DatabaseConnectionSettings(
                    alias=str(entry["alias"]),
                    dsn=str(entry["dsn"]),
                    driver=str(entry.get("driver", "sqlite")),
                )
            )
        return cls(connections=connections, max_rows=int(data.get("max_rows", 100)))


@dataclass
class ProviderSettings:
    """Connection settings for one LLM provider."""

    enabled: bool = False
    base_url: str = ""
    api_key: str = ""
    model: str = ""


@dataclass
class AISettings:
    """LLM provider settings shared by the AI tools."""

    default_provider: str = "ollama"
    timeout: float = 120.0
    max_retries: int = 2
    max_tokens: int = 1000
    temperature: float = 0.7
    providers: dict[str, ProviderSettings] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AISettings:
        providers: dict[str, ProviderSettings] = {}
        for name, entry in (data.get("providers") or {}).items():
            entry = entry or {}
            providers[name] = ProviderSettings(
                enabled=bool(entry.get("enabled", False)),
                base_url=str(entry.get("base_url", DEFAULT_PROVIDER_URLS.get(name, ""))),
                api_key=str(entry.get("api_key", "")),
                model=str(entry.get("model", "")),
            )
        return cls(
            default_provider=str(data.get("default_provider", "ollama")),
            timeout=float(data.get("timeout", 120.0)),
            max_retries=int(data.get("max_retries", 2)),
            max_tokens=int(data.get("max_tokens", 1000)),
            temperature=float(data.get("temperature", 0.7)),
            providers=providers,
        )

    def enabled_providers(self) -> list[str]:
        """Return the names of enabled providers."""
        return [name for name, provider in self.providers.items() if provider.enabled]


@dataclass
class AppConfig:
    """Complete server configuration."""

    version: str = "1.0"
    server: ServerSettings = field(default_factory=ServerSettings)
    security: SecurityPolicy = field(default_factory=SecurityPolicy)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    ai: AISettings = field(default_factory=AISettings)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> AppConfig:
        """Create a configuration from a parsed YAML mapping.

        Args:
            config: Parsed configuration; missing sections take defaults.

        Returns:
            AppConfig instance.

        Raises:
            ConfigLoadError: If a section has the wrong shape or value.
        """
        config = _expand(config)
        logging_section = _section(config, "logging")
        try:
            return cls(
                version=str(config.get("version", "1.0")),
                server=ServerSettings.from_dict(_section(config, "server")),
                security=SecurityPolicy.from_dict(_section(config, "security")),
                database=DatabaseSettings.from_dict(_section(config, "database")),
                ai=AISettings.from_dict(_section(config, "ai")),
                log_level=str(logging_section.get("level", "INFO")).upper(),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigLoadError(f"Invalid configuration value: {e}") from e


def load_config(path: Path) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the configuration file.

    Returns:
        AppConfig instance.

    Raises:
        ConfigLoadError: If the file cannot be found, parsed, or validated.
    """
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse config YAML: {e}") from e
    except OSError as e:
        raise ConfigLoadError(f"Failed to read config file: {e}") from e

    if not isinstance(config, dict):
        raise ConfigLoadError("Config must be a YAML mapping")

    if "version" not in config:
        raise ConfigLoadError("Config must include 'version' field")

    logger.debug("Loaded configuration from %s", path)
    return AppConfig.from_dict(config)
