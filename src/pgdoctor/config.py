"""
Configuration system for pgdoctor.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional config file (JSON or YAML) for local development
- Per-environment profiles
- Default check filters

Usage:
    from pgdoctor.config import get_config

    config = get_config()
    reports = await run(queries, ALL_CHECKS, config.only, config.ignored,
                        timeout=config.check_timeout_seconds)
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pgdoctor.check.instance import InstanceMetadata
from pgdoctor.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CHECK_TIMEOUT_SECONDS = 2.0


class Environment(str, Enum):
    """Environment profiles."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """Parse environment from string, defaulting to development."""
        try:
            return cls(value.lower())
        except ValueError:
            return cls.DEVELOPMENT


class Config(BaseModel):
    """
    pgdoctor configuration.

    Loaded from environment variables and an optional config file.
    CLI options override individual values at call time.
    """

    model_config = ConfigDict(frozen=True)

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Current environment (development/staging/production)",
    )

    # Connection
    dsn: str | None = Field(
        default=None,
        description="libpq connection string or URI of the target database",
    )
    application_name: str = Field(
        default="pgdoctor",
        description="application_name reported to the server",
    )
    statement_timeout_ms: int = Field(
        default=0,
        ge=0,
        description="Server-side statement_timeout, 0 keeps the server default",
    )

    # Run
    check_timeout_seconds: float = Field(
        default=DEFAULT_CHECK_TIMEOUT_SECONDS,
        gt=0,
        description="Deadline applied to every check of a run",
    )
    only: list[str] = Field(
        default_factory=list,
        description="Default filters selecting which checks run",
    )
    ignored: list[str] = Field(
        default_factory=list,
        description="Default filters excluding checks",
    )

    log_level: str = Field(default="WARNING", description="Logging level name")


def _parse_env_int(key: str, default: int) -> int:
    """Parse integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse %s=%s, using %s", key, value, default)
        return default


def _parse_env_float(key: str, default: float) -> float:
    """Parse float from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Could not parse %s=%s, using %s", key, value, default)
        return default


def _parse_env_list(key: str) -> list[str]:
    """Parse a comma-separated list, dropping empty items."""
    value = os.environ.get(key, "")
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Examples:
    - PGDOCTOR_DSN=postgres://ro@db.internal/app
    - PGDOCTOR_ENVIRONMENT=production
    - PGDOCTOR_CHECK_TIMEOUT_SECONDS=5
    - PGDOCTOR_STATEMENT_TIMEOUT_MS=1500
    - PGDOCTOR_ONLY=performance,pg-version
    - PGDOCTOR_IGNORE=vacuum
    """
    env_str = os.environ.get("PGDOCTOR_ENVIRONMENT", "development")

    timeout = _parse_env_float(
        "PGDOCTOR_CHECK_TIMEOUT_SECONDS", DEFAULT_CHECK_TIMEOUT_SECONDS
    )
    if timeout <= 0:
        logger.warning(
            "PGDOCTOR_CHECK_TIMEOUT_SECONDS must be positive, using %s",
            DEFAULT_CHECK_TIMEOUT_SECONDS,
        )
        timeout = DEFAULT_CHECK_TIMEOUT_SECONDS

    statement_timeout = _parse_env_int("PGDOCTOR_STATEMENT_TIMEOUT_MS", 0)
    if statement_timeout < 0:
        logger.warning("PGDOCTOR_STATEMENT_TIMEOUT_MS must not be negative, using 0")
        statement_timeout = 0

    config_kwargs: dict[str, Any] = {
        "environment": Environment.from_string(env_str),
        "dsn": os.environ.get("PGDOCTOR_DSN") or None,
        "application_name": os.environ.get("PGDOCTOR_APPLICATION_NAME", "pgdoctor"),
        "statement_timeout_ms": statement_timeout,
        "check_timeout_seconds": timeout,
        "only": _parse_env_list("PGDOCTOR_ONLY"),
        "ignored": _parse_env_list("PGDOCTOR_IGNORE"),
        "log_level": os.environ.get("PGDOCTOR_LOG_LEVEL", "WARNING").upper(),
    }

    return Config(**config_kwargs)


def _read_mapping(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML file that must contain a mapping."""
    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Values missing from the file are taken from the environment.
    A missing file falls back to the environment entirely.

    Raises:
        ConfigurationError: If the file cannot be parsed or holds invalid values.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        data = _read_mapping(path)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e

    base = load_config_from_env().model_dump()
    base.update(data)
    try:
        return Config(**base)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(p) for p in first["loc"]) or None
        raise ConfigurationError(
            f"Invalid config file {path}: {first['msg']}", config_key=key
        ) from e


def load_instance_metadata(path: Path) -> InstanceMetadata:
    """
    Load instance metadata from a JSON or YAML file.

    When the file has engine_version but no major/minor, they are
    derived from the version string.

    Raises:
        ConfigurationError: If the file is missing, unparseable or invalid.
    """
    if not path.exists():
        raise ConfigurationError(f"Instance metadata file not found: {path}")

    try:
        data = _read_mapping(path)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to parse instance metadata {path}: {e}") from e

    try:
        version = data.pop("engine_version", None)
        if version and "engine_version_major" not in data:
            return InstanceMetadata.from_engine_version(str(version), **data)
        return InstanceMetadata(engine_version=version, **data)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid instance metadata {path}: {e}") from e


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. PGDOCTOR_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("PGDOCTOR_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
