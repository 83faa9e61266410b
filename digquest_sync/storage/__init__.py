"""
Local storage for digquest-sync.

Layers, leaves first:
    kv_store: string key-value stores (memory, SQLite) that never raise
    kinds:    entity kinds and their key layout
    codec:    JSON <-> entity dicts with date normalization
    legacy:   whole collection under one key (mirror), events, user cache
    chunked:  one key per entity plus an id index (primary copy)
"""

from digquest_sync.storage.chunked import ChunkedEntityStore
from digquest_sync.storage.codec import decode, decode_entity, decode_result, encode, normalize
from digquest_sync.storage.kinds import (
    LAYOUTS,
    SYNCED_KINDS,
    USER_CACHE_KEY,
    EntityKind,
    KindLayout,
    layout_for,
)
from digquest_sync.storage.kv_store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from digquest_sync.storage.legacy import EventStore, LegacyAggregateStore, UserCache

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "EntityKind",
    "KindLayout",
    "LAYOUTS",
    "SYNCED_KINDS",
    "USER_CACHE_KEY",
    "layout_for",
    "decode",
    "decode_entity",
    "decode_result",
    "encode",
    "normalize",
    "ChunkedEntityStore",
    "LegacyAggregateStore",
    "EventStore",
    "UserCache",
]
