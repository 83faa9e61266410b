"""
Configuration management for digquest-sync.

This module handles loading, validating, and providing access to the
configuration stored in digquest.yaml.

The configuration file contains:
    - Location of the local key-value store and whether the legacy
      aggregate keys are still written alongside the chunked keys
    - Base URL, timeout and retry count for the DigQuest REST API
    - Image optimizer limits applied before upload
    - Log directory and console log level

Every section is optional. A missing file yields the defaults below.

Configuration File Location:
    1. The path passed to load_config()
    2. The DIGQUEST_CONFIG environment variable (a .env file is honored)
    3. digquest.yaml in the current working directory

Example digquest.yaml:
    storage:
      path: "~/.digquest/storage.db"
      dual_write: true

    api:
      base_url: "https://digquest.example.com"
      timeout: 10
      retries: 3

    optimizer:
      max_width: 1200
      max_height: 1200
      quality: 0.82
      max_output_bytes: 2621440

    logging:
      directory: "~/.digquest/logs"
      level: "INFO"
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from digquest_sync.core.exceptions import ConfigError


# Default configuration file name (in current working directory)
CONFIG_FILENAME = "digquest.yaml"
CONFIG_ENV_VAR = "DIGQUEST_CONFIG"

DEFAULT_STORAGE_PATH = "~/.digquest/storage.db"
DEFAULT_LOG_DIRECTORY = "~/.digquest/logs"
DEFAULT_API_URL = "http://localhost:5000"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class StorageConfig:
    """
    Local key-value store configuration.

    Attributes:
        path: SQLite file backing the store. Expanded and made absolute.
              The special value ':memory:' keeps the store in memory.
        dual_write: When True, every reconciliation also rewrites the
                    legacy aggregate key of each kind. When False, the
                    legacy keys are folded into the chunked store once
                    and then removed.
    """
    path: Path
    dual_write: bool = True


@dataclass(frozen=True)
class ApiConfig:
    """
    DigQuest REST API configuration.

    Attributes:
        base_url: Server root, without the trailing /api.
        timeout: Per-request timeout in seconds.
        retries: Total attempts per request (1 means no retry).
    """
    base_url: str = DEFAULT_API_URL
    timeout: float = 10.0
    retries: int = 3


@dataclass(frozen=True)
class OptimizerConfig:
    """
    Image pre-upload optimizer limits.

    Attributes:
        max_width: Maximum output width in pixels.
        max_height: Maximum output height in pixels.
        quality: Initial JPEG quality, 0..1.
        max_output_bytes: Target upper bound for the output file size.
        quality_step: Quality decrement applied while the JPEG is too large.
        quality_floor: Quality below which no further re-export is attempted.
    """
    max_width: int = 1200
    max_height: int = 1200
    quality: float = 0.82
    max_output_bytes: int = int(2.5 * 1024 * 1024)
    quality_step: float = 0.08
    quality_floor: float = 0.55


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        directory: Directory receiving the log files.
        level: Console log level.
    """
    directory: Path
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        store = SqliteKeyValueStore(config.storage.path)
        reconciler = Reconciler(store, dual_write=config.storage.dual_write)
    """
    storage: StorageConfig
    api: ApiConfig
    optimizer: OptimizerConfig
    logging: LoggingConfig


def default_config() -> Config:
    """Return the configuration used when no file is present."""
    return Config(
        storage=StorageConfig(path=_expand_path(DEFAULT_STORAGE_PATH)),
        api=ApiConfig(),
        optimizer=OptimizerConfig(),
        logging=LoggingConfig(directory=_expand_path(DEFAULT_LOG_DIRECTORY)),
    )


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from digquest.yaml.

    Args:
        config_path: Optional explicit path to config file. If None, the
                     DIGQUEST_CONFIG environment variable is consulted,
                     then digquest.yaml in the current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.
                If no file is found (and none was requested explicitly)
                the defaults are returned.

    Raises:
        ConfigError: If an explicitly requested file is missing, the file
                     has invalid YAML syntax, or contains invalid values.
    """
    load_dotenv()

    explicit = config_path is not None
    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            config_path = Path(env_path).expanduser()
            explicit = True
        else:
            config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        if explicit:
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        return default_config()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if raw_config is None:
        return default_config()

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return Config(
        storage=_parse_storage_config(_section(raw_config, "storage")),
        api=_parse_api_config(_section(raw_config, "api")),
        optimizer=_parse_optimizer_config(_section(raw_config, "optimizer")),
        logging=_parse_logging_config(_section(raw_config, "logging")),
    )


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _expand_path(raw: str) -> Path:
    if raw == ":memory:":
        return Path(raw)
    return Path(raw).expanduser().resolve()


def _parse_storage_config(section: dict[str, Any]) -> StorageConfig:
    raw_path = section.get("path", DEFAULT_STORAGE_PATH)
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise ConfigError(
            "'storage.path' must be a non-empty string",
            details={"field": "storage.path"}
        )

    dual_write = section.get("dual_write", True)
    if not isinstance(dual_write, bool):
        raise ConfigError(
            "'storage.dual_write' must be true or false",
            details={"field": "storage.dual_write", "value": dual_write}
        )

    return StorageConfig(path=_expand_path(raw_path.strip()), dual_write=dual_write)


def _parse_api_config(section: dict[str, Any]) -> ApiConfig:
    base_url = section.get("base_url", DEFAULT_API_URL)
    if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
        raise ConfigError(
            "'api.base_url' must be an http(s) URL",
            details={"field": "api.base_url", "value": base_url}
        )

    timeout = section.get("timeout", 10.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(
            "'api.timeout' must be a positive number",
            details={"field": "api.timeout", "value": timeout}
        )

    retries = section.get("retries", 3)
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 1:
        raise ConfigError(
            "'api.retries' must be a positive integer",
            details={"field": "api.retries", "value": retries}
        )

    return ApiConfig(base_url=base_url.rstrip("/"), timeout=float(timeout), retries=retries)


def _parse_optimizer_config(section: dict[str, Any]) -> OptimizerConfig:
    defaults = OptimizerConfig()
    values: dict[str, Any] = {}

    for field_name in ("max_width", "max_height", "max_output_bytes"):
        raw = section.get(field_name, getattr(defaults, field_name))
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
            raise ConfigError(
                f"'optimizer.{field_name}' must be a positive integer",
                details={"field": f"optimizer.{field_name}", "value": raw}
            )
        values[field_name] = raw

    for field_name in ("quality", "quality_step", "quality_floor"):
        raw = section.get(field_name, getattr(defaults, field_name))
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not 0 < raw <= 1:
            raise ConfigError(
                f"'optimizer.{field_name}' must be a number between 0 and 1",
                details={"field": f"optimizer.{field_name}", "value": raw}
            )
        values[field_name] = float(raw)

    if values["quality_floor"] > values["quality"]:
        raise ConfigError(
            "'optimizer.quality_floor' cannot exceed 'optimizer.quality'",
            details={"quality": values["quality"], "quality_floor": values["quality_floor"]}
        )

    return OptimizerConfig(**values)


def _parse_logging_config(section: dict[str, Any]) -> LoggingConfig:
    directory = section.get("directory", DEFAULT_LOG_DIRECTORY)
    if not isinstance(directory, str) or not directory.strip():
        raise ConfigError(
            "'logging.directory' must be a non-empty string",
            details={"field": "logging.directory"}
        )

    level = section.get("level", "INFO")
    if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
        raise ConfigError(
            f"'logging.level' must be one of {', '.join(LOG_LEVELS)}",
            details={"field": "logging.level", "value": level}
        )

    return LoggingConfig(directory=_expand_path(directory.strip()), level=level.upper())
