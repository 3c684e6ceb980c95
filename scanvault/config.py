"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      committed static defaults
  2. ``config/local.toml``        optional local overrides (gitignored)
  3. ``.env``                     local secrets and env overrides (gitignored)
  4. Environment variables        ``SCANVAULT_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The import engine, pipeline stages and CLI commands all receive an
``AppConfig`` instance, never raw dicts or scattered env var lookups.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite document store settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/scanvault.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    bulk_writer: bool = True


class ImportConfig(BaseModel):
    """Chunking and pacing of backing-store writes.

    Larger documents use smaller chunks: latest documents carry every CSV
    column plus search fields, history buckets are aggregated, scans are many
    and mid-sized.
    """

    model_config = ConfigDict(frozen=True)

    scans_chunk_size: int = 120
    latest_chunk_size: int = 40
    history_chunk_size: int = 120
    inter_chunk_pause_ms: int = 12

    @field_validator("scans_chunk_size", "latest_chunk_size", "history_chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Chunk sizes must be >= 1, got {v}.")
        return v

    @field_validator("inter_chunk_pause_ms")
    @classmethod
    def validate_pause(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"inter_chunk_pause_ms must be >= 0, got {v}.")
        return v


class AggregationConfig(BaseModel):
    """Field policy for weekly/monthly history buckets.

    Columns whose canonical name is in ``max_fields``, or contains one of
    ``max_substrings``, keep the numeric maximum of the period. Every other
    column keeps the last non-empty value.
    """

    model_config = ConfigDict(frozen=True)

    max_fields: list[str] = [
        "Strength", "Dexterity", "Intelligence", "Constitution", "Luck", "Attribute",
    ]
    max_substrings: list[str] = ["equipment"]


class RankingConfig(BaseModel):
    """Leaderboard and per-server snapshot settings."""

    model_config = ConfigDict(frozen=True)

    metric: str = "sum"
    snapshot_limit: int = 500

    @field_validator("snapshot_limit")
    @classmethod
    def validate_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"snapshot_limit must be >= 1, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/scanvault.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration.

    Constructed by ``load_config()`` which merges TOML + .env + environment.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    imports: ImportConfig = ImportConfig()
    aggregation: AggregationConfig = AggregationConfig()
    ranking: RankingConfig = RankingConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``.

    Nested dicts merge key-by-key; every other value in ``override`` replaces
    the one in ``base``. Neither input is mutated.
    """
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply SCANVAULT_* env vars to the raw config dict.

    Supported overrides:
      SCANVAULT_DB_PATH    → raw["database"]["db_path"]
      SCANVAULT_LOG_LEVEL  → raw["logging"]["level"]
      SCANVAULT_DEBUG      → raw["debug"]
    """
    if db_path := os.environ.get("SCANVAULT_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("SCANVAULT_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("SCANVAULT_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        imports=ImportConfig(**raw.get("import", {})),
        aggregation=AggregationConfig(**raw.get("aggregation", {})),
        ranking=RankingConfig(**raw.get("ranking", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
