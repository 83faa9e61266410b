"""
Whole-collection storage under a single key.

LegacyAggregateStore keeps an entire collection as one JSON array. It is
the original storage format of the web client and is still mirrored by
the Reconciler while dual-write is enabled, for callers that expect a
single collection read.

Two small caches reuse the same format:
    EventStore: events are only ever stored as one aggregate.
    UserCache: cached user records, pruned when an account is deleted.
"""

import json

from digquest_sync.core.exceptions import CodecError, StorageResult
from digquest_sync.core.logger import get_logger, log_rejected_entity
from digquest_sync.storage import codec
from digquest_sync.storage.kinds import USER_CACHE_KEY, EntityKind, layout_for
from digquest_sync.storage.kv_store import KeyValueStore

logger = get_logger(__name__)


class LegacyAggregateStore:
    """
    One collection stored as a JSON array under one key.

    Args:
        store: The key-value store to write to.
        kind: Entity kind of the collection.
        key: Storage key. Defaults to the kind's legacy key; pass an alias
             key to read an older copy of the collection.
    """

    def __init__(self, store: KeyValueStore, kind: EntityKind | str, key: str | None = None) -> None:
        self.store = store
        self.kind = EntityKind(kind)
        self.key = key or layout_for(self.kind).legacy_key

    def exists(self) -> bool:
        return self.store.get(self.key) is not None

    def get_result(self) -> StorageResult[list[dict]]:
        """Typed read: reports storage and decode failures instead of logging them away."""
        read = self.store.read(self.key)
        if not read.ok:
            return StorageResult(error=read.error)
        return codec.decode_result(self.kind, read.value)

    def get_all(self) -> list[dict]:
        """
        Return the stored collection, or [] if it is missing or corrupted.

        Elements that are not JSON objects are dropped.
        """
        decoded = codec.decode(self.kind, self.store.get(self.key), [])
        entities = [e for e in decoded if isinstance(e, dict)]
        if len(entities) != len(decoded):
            logger.warning(
                f"Dropped {len(decoded) - len(entities)} non-object entries from '{self.key}'"
            )
        logger.debug(f"Loaded {len(entities)} {self.kind.value} records from '{self.key}'")
        return entities

    def save_all(self, entities: list[dict]) -> bool:
        """Replace the stored collection. Returns False if it could not be encoded."""
        try:
            text = codec.encode(self.kind, entities)
        except CodecError as e:
            logger.error(f"Error saving {self.kind.value} collection to '{self.key}': {e}")
            return False
        if self.store.get(self.key) == text:
            return True
        self.store.set(self.key, text)
        logger.debug(f"Saved {len(entities)} {self.kind.value} records to '{self.key}'")
        return True

    def upsert(self, entity: dict, newest_first: bool = True) -> bool:
        """
        Insert or replace one entity by id.

        With newest_first the entity moves to the front of the collection,
        otherwise it keeps its position (or is appended when new).
        """
        entity_id = entity.get("id") if isinstance(entity, dict) else None
        if not entity_id:
            log_rejected_entity(logger, self.kind.value, entity)
            return False

        existing = self.get_all()
        if newest_first:
            updated = [entity] + [e for e in existing if e.get("id") != entity_id]
        else:
            updated = [entity if e.get("id") == entity_id else e for e in existing]
            if not any(e.get("id") == entity_id for e in existing):
                updated.append(entity)
        return self.save_all(updated)

    def remove(self, entity_id) -> None:
        """Remove one entity by id. A missing key is left missing."""
        if not self.exists():
            return
        existing = self.get_all()
        remaining = [e for e in existing if e.get("id") != entity_id]
        if len(remaining) != len(existing):
            self.save_all(remaining)

    def clear(self) -> None:
        self.store.remove(self.key)


class EventStore(LegacyAggregateStore):
    """Aggregate-only storage for events."""

    def __init__(self, store: KeyValueStore) -> None:
        super().__init__(store, EntityKind.EVENT)

    def get_stored_events(self) -> list[dict]:
        events = self.get_all()
        logger.info(f"Loaded {len(events)} events from storage")
        return events

    def save_events(self, events: list[dict]) -> bool:
        saved = self.save_all(events)
        if saved:
            logger.info(f"Saved {len(events)} events to storage")
        return saved


class UserCache:
    """Cached user records stored as one JSON array."""

    def __init__(self, store: KeyValueStore, key: str = USER_CACHE_KEY) -> None:
        self.store = store
        self.key = key

    def get_users(self) -> list[dict]:
        raw = self.store.get(self.key)
        if raw is None:
            return []
        try:
            users = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing user cache: {e}")
            return []
        return users if isinstance(users, list) else []

    def remove_user(self, user_id: int) -> None:
        """Drop one user from the cache, e.g. after the account was deleted."""
        if self.store.get(self.key) is None:
            return
        users = self.get_users()
        remaining = [u for u in users if not (isinstance(u, dict) and u.get("id") == user_id)]
        self.store.set(self.key, json.dumps(remaining))
        logger.info(f"User {user_id} removed from cache")

    def clear(self) -> None:
        self.store.remove(self.key)
        logger.info("User cache cleared from storage")
