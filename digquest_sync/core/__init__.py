"""
Core module for digquest-sync.

This module provides the foundational components used throughout the package:
    - exceptions: Custom exception classes and the StorageResult type
    - config: Configuration loading and validation
    - logger: Logging system with multiple outputs

Usage:
    from digquest_sync.core import (
        Config, load_config,
        setup_logging, get_logger,
        DigQuestSyncError, ConfigError, StorageError
    )
"""

from digquest_sync.core.config import (
    ApiConfig,
    Config,
    LoggingConfig,
    OptimizerConfig,
    StorageConfig,
    default_config,
    load_config,
)
from digquest_sync.core.exceptions import (
    ApiError,
    CodecError,
    ConfigError,
    DigQuestSyncError,
    ImageOptimizationError,
    StorageError,
    StorageResult,
)
from digquest_sync.core.logger import (
    get_logger,
    log_rejected_entity,
    log_storage_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "StorageConfig",
    "ApiConfig",
    "OptimizerConfig",
    "LoggingConfig",
    "default_config",
    "load_config",
    # Exceptions
    "DigQuestSyncError",
    "ConfigError",
    "StorageError",
    "CodecError",
    "ApiError",
    "ImageOptimizationError",
    "StorageResult",
    # Logger
    "setup_logging",
    "get_logger",
    "log_storage_failure",
    "log_rejected_entity",
    "shutdown_logging",
]
