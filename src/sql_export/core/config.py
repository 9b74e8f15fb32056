"""Configuration management for sql-export.

Handles the TOML config file, environment variables, named profiles,
connection strings and configuration precedence resolution.

Connection precedence (highest to lowest):
1. CLI flags (--server, --port, --database, ...)
2. --dsn flag (parsed into components)
3. Environment variables (PGHOST, PGPORT, PGDATABASE, PGUSER, PGPASSWORD)
4. Named profile (--profile or SQL_EXPORT_PROFILE env var)
5. Built-in defaults

Export settings precedence: CLI flags > [export] table > built-in defaults.
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

import psycopg
from psycopg.conninfo import conninfo_to_dict
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from sql_export.core.exceptions import ConfigError
from sql_export.core.models import ExportConfiguration

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "sql-export" / "config.toml"

PROFILE_ENV_VAR = "SQL_EXPORT_PROFILE"

_PG_ENV_VARS: dict[str, str] = {
    "PGHOST": "host",
    "PGPORT": "port",
    "PGDATABASE": "dbname",
    "PGUSER": "user",
    "PGPASSWORD": "password",  # pragma: allowlist secret
}

_PROFILE_DEFAULTS: dict[str, Any] = {
    "host": "localhost",
    "port": 5432,
    "dbname": None,
    "user": None,
    "password": None,
    "sslmode": "prefer",
    "connect_timeout": 10,
    "application_name": "sql-export",
}

_CONNINFO_KEYS = (
    "host",
    "port",
    "dbname",
    "user",
    "password",
    "sslmode",
    "connect_timeout",
    "application_name",
)
_INT_KEYS = frozenset({"port", "connect_timeout"})

# Named aliases accepted for --delimiter / --newline
_ALIASES: dict[str, str] = {
    "tab": "\t",
    "comma": ",",
    "semicolon": ";",
    "pipe": "|",
    "crlf": "\r\n",
    "lf": "\n",
    "cr": "\r",
}
_ESCAPES: dict[str, str] = {"t": "\t", "r": "\r", "n": "\n", "\\": "\\"}
_ESCAPE_RE = re.compile(r"\\(.)")


def unescape_option(value: str) -> str:
    r"""Decode shell-friendly spellings of control characters.

    Named aliases (``tab``, ``crlf``, ...) are matched case-insensitively;
    otherwise ``\t``, ``\r``, ``\n`` and ``\\`` escapes are expanded and
    any other backslash sequence is kept as written.
    """
    alias = _ALIASES.get(value.lower())
    if alias is not None:
        return alias
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(0)), value)


def _parse_url_dsn(dsn: str) -> dict[str, Any]:
    parsed = urlparse(dsn)
    if parsed.scheme not in ("postgresql", "postgres"):
        msg = f"Invalid DSN scheme: '{parsed.scheme}'. Expected 'postgresql' or 'postgres'"
        raise ConfigError(msg)

    result: dict[str, Any] = {}
    try:
        port = parsed.port
    except ValueError as e:
        raise ConfigError(f"Invalid DSN port: {e}") from e
    if parsed.hostname:
        result["host"] = parsed.hostname
    if port:
        result["port"] = port
    if parsed.path and parsed.path.strip("/"):
        result["dbname"] = unquote(parsed.path.strip("/"))
    if parsed.username:
        result["user"] = unquote(parsed.username)
    if parsed.password:
        result["password"] = unquote(parsed.password)
    query_params = parse_qs(parsed.query)
    for key in ("sslmode", "connect_timeout", "application_name"):
        if key in query_params:
            result[key] = query_params[key][0]
    return result


def parse_dsn(dsn: str) -> dict[str, Any]:
    """Parse a connection string into connection fields.

    Accepts postgresql:// and postgres:// URLs as well as libpq
    ``key=value`` connection strings.
    """
    if "://" in dsn:
        raw = _parse_url_dsn(dsn)
    else:
        try:
            raw = conninfo_to_dict(dsn)
        except psycopg.ProgrammingError as e:
            raise ConfigError(f"Invalid connection string: {e}") from e

    result: dict[str, Any] = {}
    for key in _CONNINFO_KEYS:
        if raw.get(key) is None:
            continue
        value = raw[key]
        if key in _INT_KEYS:
            try:
                value = int(value)
            except (TypeError, ValueError):
                msg = f"Invalid {key} in connection string: {value!r}"
                raise ConfigError(msg) from None
        result[key] = value
    return result


class ConnectionProfile(BaseModel):
    dsn: str | None = None
    host: str = "localhost"
    port: int = 5432
    dbname: str | None = None
    user: str | None = None
    password: str | None = None
    sslmode: str = "prefer"
    connect_timeout: int = 10
    application_name: str = "sql-export"

    @model_validator(mode="before")
    @classmethod
    def parse_dsn_into_components(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("dsn"):
            dsn_fields = parse_dsn(data["dsn"])
            for key, value in dsn_fields.items():
                if key not in data:
                    data[key] = value
        return data

    @field_validator("sslmode")
    @classmethod
    def validate_sslmode(cls, v: str) -> str:
        valid_modes = {
            "disable",
            "allow",
            "prefer",
            "require",
            "verify-ca",
            "verify-full",
        }
        if v not in valid_modes:
            msg = f"Invalid sslmode: '{v}'. Must be one of: {', '.join(sorted(valid_modes))}"
            raise ValueError(msg)
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v

    @field_validator("connect_timeout")
    @classmethod
    def validate_connect_timeout(cls, v: int) -> int:
        if v < 0:
            msg = f"Invalid connect_timeout: {v}. Must be >= 0 (0 = no limit)"
            raise ValueError(msg)
        return v


class ExportDefaults(BaseModel):
    """The optional [export] table of the config file."""

    delimiter: str | None = None
    newline: str | None = None
    quote: str | None = None
    escape: str | None = None
    date_format: str | None = None
    encoding: str | None = None
    progress_every: int | None = None


class AppConfig(BaseModel):
    default_timeout: float = 0.0
    default_profile: str | None = None
    export: ExportDefaults = ExportDefaults()
    profiles: dict[str, ConnectionProfile] = {}


class ResolvedConfig(BaseModel):
    host: str = "localhost"
    port: int = 5432
    dbname: str | None = None
    user: str | None = None
    password: str | None = None
    sslmode: str = "prefer"
    connect_timeout: int = 10
    application_name: str = "sql-export"
    default_timeout: float = 0.0
    has_dsn: bool = False

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file.

    Returns default AppConfig if file doesn't exist.
    Raises ConfigError on malformed TOML or invalid config.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Malformed TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid configuration in {config_path}: {e}"
        raise ConfigError(msg) from e


def resolve_config(
    config: AppConfig,
    profile_name: str | None = None,
    dsn: str | None = None,
    **cli_overrides: Any,
) -> ResolvedConfig:
    """Resolve connection configuration using the precedence chain.

    Raises ConfigError when neither a database name nor a connection
    string is available after resolution.
    """
    resolved: dict[str, Any] = dict(_PROFILE_DEFAULTS)
    resolved["default_timeout"] = config.default_timeout
    has_dsn = False

    # Named profile
    effective_profile = profile_name
    if not effective_profile:
        effective_profile = os.environ.get(PROFILE_ENV_VAR)
    if not effective_profile:
        effective_profile = config.default_profile

    if effective_profile:
        if effective_profile not in config.profiles:
            available = (
                ", ".join(sorted(config.profiles.keys())) if config.profiles else "none"
            )
            msg = f"Unknown profile: '{effective_profile}'. Available profiles: {available}"
            raise ConfigError(msg)
        profile = config.profiles[effective_profile]
        if profile.dsn:
            has_dsn = True
        for key in profile.model_fields_set:
            if key in resolved:
                resolved[key] = getattr(profile, key)

    # Environment variables
    for env_var, field_name in _PG_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value is not None:
            if field_name == "port":
                try:
                    resolved[field_name] = int(value)
                except ValueError:
                    msg = f"Invalid {env_var} value: '{value}'. Must be an integer"
                    raise ConfigError(msg) from None
            else:
                resolved[field_name] = value

    # DSN flag
    if dsn:
        has_dsn = True
        for key, value in parse_dsn(dsn).items():
            if key in resolved:
                resolved[key] = value

    # CLI flags (highest priority)
    cli_to_field = {
        "server": "host",
        "port": "port",
        "database": "dbname",
        "user": "user",
        "password": "password",  # pragma: allowlist secret
        "timeout": "default_timeout",
        "connect_timeout": "connect_timeout",
    }
    for cli_name, field_name in cli_to_field.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            resolved[field_name] = value

    if not resolved["dbname"] and not has_dsn:
        msg = (
            "Neither a database name nor a connection string was supplied. "
            "Use --database, --dsn, a profile, or PGDATABASE."
        )
        raise ConfigError(msg)

    if resolved["default_timeout"] < 0:
        msg = f"Invalid timeout: {resolved['default_timeout']}. Must be >= 0 (0 = no limit)"
        raise ConfigError(msg)

    resolved["has_dsn"] = has_dsn
    try:
        return ResolvedConfig(**resolved)
    except ValidationError as e:
        raise ConfigError(f"Invalid connection settings: {e}") from e


def build_export_config(config: AppConfig, **cli_overrides: Any) -> ExportConfiguration:
    """Merge the [export] table with CLI flags into an ExportConfiguration.

    Delimiter and newline values from either source go through
    unescape_option(). Raises ConfigError on invalid settings.
    """
    settings: dict[str, Any] = config.export.model_dump(exclude_none=True)
    for key, value in cli_overrides.items():
        if value is not None:
            settings[key] = value
    for key in ("delimiter", "newline"):
        if key in settings:
            settings[key] = unescape_option(settings[key])

    try:
        return ExportConfiguration(**settings)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid export settings: {problems}") from e
