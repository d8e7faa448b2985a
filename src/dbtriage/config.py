"""
Configuration system for dbtriage.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional config file (JSON or YAML) layered on top
- Per-evaluator thresholds and enable flags

Usage:
    from dbtriage.config import get_config, Config

    # Load from environment (default)
    config = get_config()

    # Check if an evaluator is enabled
    if config.is_evaluator_enabled("HIGH_BLOAT"):
        ...

    # Threshold overrides for one evaluator, ready for its config_schema
    overrides = config.evaluator_overrides("HIGH_SEQ_SCAN")
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dbtriage.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "DBTRIAGE_"
EVALUATOR_PREFIX = "DBTRIAGE_EVALUATOR_"


class EvaluatorSettings(BaseModel):
    """Configuration for a single evaluator."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether the evaluator runs")
    thresholds: dict[str, int | float | bool] = Field(
        default_factory=dict,
        description="Evaluator-specific threshold overrides",
    )


class Config(BaseModel):
    """
    dbtriage configuration.

    Loaded from environment variables and an optional config file.
    """

    model_config = ConfigDict(frozen=True)

    # Connection
    dsn: str | None = Field(default=None, description="PostgreSQL connection string")
    statement_timeout_ms: int = Field(
        default=30_000,
        gt=0,
        description="Server-side timeout applied to every catalog query",
    )
    connect_timeout_seconds: int = Field(default=10, gt=0)
    application_name: str = Field(default="dbtriage")

    # Free-form queries
    max_rows: int = Field(
        default=100,
        gt=0,
        description="LIMIT appended to free-form queries that have none",
    )

    # Analysis
    top_tables: int = Field(
        default=5,
        ge=0,
        description="Tables expanded into per-table steps in the workflow",
    )
    concurrent_fetch: bool = Field(
        default=False,
        description="Fetch statistic categories in parallel",
    )
    max_workers: int = Field(default=4, ge=1, description="Thread pool size for concurrent fetch")

    # Logging
    log_level: str = Field(default="INFO")
    log_file: str | None = Field(default=None, description="Optional rotating log file")

    evaluators: dict[str, EvaluatorSettings] = Field(
        default_factory=dict,
        description="Per-evaluator settings keyed by evaluator ID",
    )

    @property
    def fetch_workers(self) -> int:
        """Worker count handed to collect_snapshot."""
        return self.max_workers if self.concurrent_fetch else 1

    def is_evaluator_enabled(self, evaluator_id: str) -> bool:
        if evaluator_id in self.evaluators:
            return self.evaluators[evaluator_id].enabled
        return True  # Evaluators enabled by default

    def evaluator_overrides(self, evaluator_id: str) -> dict[str, Any]:
        """Threshold overrides for one evaluator (empty when none are set)."""
        settings = self.evaluators.get(evaluator_id)
        if settings is None:
            return {}
        return dict(settings.thresholds)


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer value %r", value)
        return default


def _parse_threshold(value: str) -> int | float | bool:
    lowered = value.lower()
    if lowered in ("true", "false", "yes", "no", "on", "off"):
        return _parse_env_bool(value)
    return float(value) if "." in value or "e" in lowered else int(value)


def _known_evaluator_ids() -> list[str]:
    # Imported here: the analyzer package imports this module
    from dbtriage.analyzer import evaluators  # noqa: F401
    from dbtriage.analyzer.registry import get_registry

    # Longest first so HIGH_SEQ_SCAN wins over a hypothetical HIGH_SEQ
    return sorted(get_registry().all_ids(), key=len, reverse=True)


def _parse_evaluator_env(environ: dict[str, str]) -> dict[str, EvaluatorSettings]:
    """
    Collect DBTRIAGE_EVALUATOR_<ID>_<SETTING> variables.

    Evaluator IDs and setting names both contain underscores, so the ID
    is resolved by matching against the registered evaluator IDs.
    """
    settings: dict[str, EvaluatorSettings] = {}
    known_ids = None

    for key, value in sorted(environ.items()):
        if not key.startswith(EVALUATOR_PREFIX):
            continue
        if known_ids is None:
            known_ids = _known_evaluator_ids()

        rest = key[len(EVALUATOR_PREFIX):]
        evaluator_id = next(
            (eid for eid in known_ids if rest.startswith(eid + "_")),
            None,
        )
        if evaluator_id is None:
            logger.warning("Ignoring %s: no evaluator matches", key)
            continue

        setting = rest[len(evaluator_id) + 1:].lower()
        current = settings.get(evaluator_id, EvaluatorSettings())

        if setting == "enabled":
            settings[evaluator_id] = current.model_copy(
                update={"enabled": _parse_env_bool(value, True)}
            )
            continue

        try:
            parsed = _parse_threshold(value)
        except ValueError:
            logger.warning("Could not parse threshold %s=%s", key, value)
            continue
        thresholds = dict(current.thresholds)
        thresholds[setting] = parsed
        settings[evaluator_id] = current.model_copy(update={"thresholds": thresholds})

    return settings


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Environment variable naming convention:
    - DBTRIAGE_<SETTING> for global settings
    - DBTRIAGE_EVALUATOR_<EVALUATOR_ID>_<SETTING> for evaluator settings
    - DATABASE_URL is used when DBTRIAGE_DSN is not set

    Examples:
    - DBTRIAGE_DSN=postgresql://app@db/prod
    - DBTRIAGE_STATEMENT_TIMEOUT_MS=10000
    - DBTRIAGE_EVALUATOR_IDLE_CONNECTIONS_ENABLED=false
    - DBTRIAGE_EVALUATOR_HIGH_BLOAT_DEAD_TUPLE_RATIO=0.2
    """
    env = os.environ

    config_kwargs: dict[str, Any] = {
        "dsn": env.get("DBTRIAGE_DSN") or env.get("DATABASE_URL"),
        "statement_timeout_ms": _parse_env_int(env.get("DBTRIAGE_STATEMENT_TIMEOUT_MS"), 30_000),
        "connect_timeout_seconds": _parse_env_int(
            env.get("DBTRIAGE_CONNECT_TIMEOUT_SECONDS"), 10
        ),
        "application_name": env.get("DBTRIAGE_APPLICATION_NAME", "dbtriage"),
        "max_rows": _parse_env_int(env.get("DBTRIAGE_MAX_ROWS"), 100),
        "top_tables": _parse_env_int(env.get("DBTRIAGE_TOP_TABLES"), 5),
        "concurrent_fetch": _parse_env_bool(env.get("DBTRIAGE_CONCURRENT_FETCH"), False),
        "max_workers": _parse_env_int(env.get("DBTRIAGE_MAX_WORKERS"), 4),
        "log_level": env.get("DBTRIAGE_LOG_LEVEL", "INFO").upper(),
        "log_file": env.get("DBTRIAGE_LOG_FILE") or None,
        "evaluators": _parse_evaluator_env(dict(env)),
    }

    try:
        return Config(**config_kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in environment: {e}") from e


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Values in the file override the environment; anything the file does
    not set keeps its environment (or default) value.

    Raises:
        ConfigurationError: File unreadable, not a mapping, or invalid.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    merged = load_config_from_env().model_dump()
    merged.update(data)
    try:
        return Config(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. DBTRIAGE_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("DBTRIAGE_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
