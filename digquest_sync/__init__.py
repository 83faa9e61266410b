"""
digquest-sync: Offline data layer and upload helpers for DigQuest.

DigQuest is a metal-detecting community app. Finds, map locations, forum
posts and events are fetched from the server and cached locally so that
they stay visible offline, and records created offline are kept until the
server knows about them.

Architecture:
    STORAGE (storage/): Local key-value cache
        - String key-value stores (in-memory, SQLite)
        - One key per entity plus an id index ("chunked" layout)
        - Whole-collection keys kept as a legacy mirror
        - JSON codec with ISO-8601 date normalization

    SYNC (sync/): Reconciliation with the server
        - Server records always win over local copies
        - Local-only records are kept and appended
        - Forum posts are kept newest first
        - One-time fold of legacy keys into the chunked layout

    MEDIA (media/): Pre-upload image optimization
        - Scale down to the configured bounds, never up
        - Recompress JPEGs until they fit the byte budget

Modules:
    core/       - Configuration, logging, exceptions
    storage/    - Key-value stores, key layout, codec, chunked and legacy stores
    sync/       - Reconciler and legacy migration
    media/      - Image optimizer
    api/        - REST client for the server collections
    utils/      - Retry decorator and filesystem helpers
    cli.py      - Command-line interface

Usage:
    Command Line:
        digquest-sync reconcile find --from-api
        digquest-sync list post
        digquest-sync optimize photo.jpg --out-dir upload/

    Python API:
        from digquest_sync import Reconciler, SqliteKeyValueStore, load_config

        config = load_config()
        reconciler = Reconciler(SqliteKeyValueStore(config.storage.path))
        finds = reconciler.reconcile("find", server_finds)

Dependencies:
    - Pillow: Image decoding, resizing and encoding
    - requests: REST API client
    - click: CLI framework
    - rich-click: CLI colors
    - tqdm: Progress bars
    - pyyaml: Configuration file parsing
    - python-dotenv: .env support for DIGQUEST_CONFIG
"""

__version__ = "0.1.0"
__author__ = "digquest-sync"
__license__ = "MIT"

# Convenience imports for common usage
from digquest_sync.core import (
    ApiError,
    CodecError,
    Config,
    ConfigError,
    DigQuestSyncError,
    ImageOptimizationError,
    StorageError,
    StorageResult,
    get_logger,
    load_config,
    setup_logging,
)
from digquest_sync.media import ImageFile, ImageOptimizer, OptimizeOptions
from digquest_sync.storage import (
    EntityKind,
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
)
from digquest_sync.sync import Reconciler

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "setup_logging",
    "get_logger",
    # Exceptions
    "DigQuestSyncError",
    "ConfigError",
    "StorageError",
    "CodecError",
    "ApiError",
    "ImageOptimizationError",
    "StorageResult",
    # Storage
    "EntityKind",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    # Sync
    "Reconciler",
    # Media
    "ImageFile",
    "ImageOptimizer",
    "OptimizeOptions",
]
