"""Relay configuration.

Resolution order for the config file:
1. Explicit path (``--config``)
2. $TRANSCRIPT_RELAY_CONFIG
3. ~/.transcript-relay/config.yaml (optional: missing means defaults)

Environment overrides applied after the file:
- $TRANSCRIPT_RELAY_STORES: session store files, os.pathsep separated
- $TRANSCRIPT_RELAY_TRANSCRIPTS: transcript directory to watch

Example config.yaml:

    session_stores:
      - ~/.transcript-relay/sessions.json
    transcripts_dir: ~/.transcript-relay/transcripts
    cache_ttl_seconds: 600
    log_level: DEBUG
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TRANSCRIPT_RELAY_CONFIG"
STORES_ENV_VAR = "TRANSCRIPT_RELAY_STORES"
TRANSCRIPTS_ENV_VAR = "TRANSCRIPT_RELAY_TRANSCRIPTS"


class ConfigError(RuntimeError):
    """Configuration file missing, unparseable, or invalid."""


def get_default_config_path() -> Path:
    return Path.home() / ".transcript-relay" / "config.yaml"


class RelayConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Bridge
    cache_ttl_seconds: float = Field(default=600.0, gt=0)
    cache_max_entries: int | None = Field(default=None, ge=1)
    header_read_bytes: int = Field(default=8192, gt=0)

    # Session store
    session_stores: list[Path] = Field(default_factory=list)
    store_lock_timeout_seconds: float = Field(default=5.0, ge=0)

    # Watcher
    transcripts_dir: Path | None = None
    transcript_glob: str = "*.jsonl"
    poll_interval_seconds: float = Field(default=1.0, gt=0)

    # Clients and diagnostics
    client_queue_size: int = Field(default=256, ge=1)
    stats_interval_seconds: float = Field(default=60.0, gt=0)
    log_level: str = "INFO"

    @field_validator("session_stores", mode="after")
    @classmethod
    def _expand_stores(cls, value: list[Path]) -> list[Path]:
        return [p.expanduser() for p in value]

    @field_validator("transcripts_dir", mode="after")
    @classmethod
    def _expand_transcripts_dir(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    @field_validator("log_level", mode="after")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Config is not valid YAML {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping at top level: {path}")
    return data


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    stores = os.environ.get(STORES_ENV_VAR)
    if stores:
        overrides["session_stores"] = [s for s in stores.split(os.pathsep) if s.strip()]
    transcripts = os.environ.get(TRANSCRIPTS_ENV_VAR)
    if transcripts:
        overrides["transcripts_dir"] = transcripts
    return overrides


def load_config(path: Path | None = None) -> RelayConfig:
    """Load relay configuration.

    Args:
        path: Explicit config file. Must exist if given.

    Returns:
        Validated RelayConfig

    Raises:
        ConfigError: If an explicitly named file is missing or any value is invalid
    """
    explicit = path is not None or bool(os.environ.get(CONFIG_ENV_VAR))
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else get_default_config_path()
    path = path.expanduser()

    data: dict[str, Any] = {}
    if path.exists():
        data = _read_yaml(path)
        logger.debug("Loaded config from %s", path)
    elif explicit:
        raise ConfigError(
            f"Config file not found: {path}\n"
            f"Pass --config or set {CONFIG_ENV_VAR} to an existing file."
        )

    data.update(_env_overrides())
    try:
        return RelayConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}:\n{e}") from e
