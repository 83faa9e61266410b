"""
Chunked entity storage.

Stores each entity under its own key (<prefix>_<id>) plus an ordered JSON
list of known ids under a fixed index key. Compared with one big array,
this keeps every stored value small and makes adding or removing a single
entity touch only two keys.

The chunked key-space is the primary copy of local data. The legacy
aggregate key of the same kind (see legacy.py) is a secondary mirror.

Reading is tolerant of partial state: an id listed in the index whose
entity key has gone missing is skipped, not treated as an error.
"""

import json

from digquest_sync.core.exceptions import CodecError
from digquest_sync.core.logger import get_logger, log_rejected_entity
from digquest_sync.storage import codec
from digquest_sync.storage.kinds import KindLayout
from digquest_sync.storage.kv_store import KeyValueStore
from digquest_sync.storage.legacy import LegacyAggregateStore

logger = get_logger(__name__)


class ChunkedEntityStore:
    """
    Per-entity storage for one entity kind.

    Args:
        store: The key-value store to write to.
        layout: Key layout of the kind. Must have an entity prefix and
                an index key.
    """

    def __init__(self, store: KeyValueStore, layout: KindLayout) -> None:
        if not layout.chunked:
            raise ValueError(f"Kind '{layout.kind.value}' has no chunked layout")
        self.store = store
        self.layout = layout

    @property
    def kind_name(self) -> str:
        return self.layout.kind.value

    def list_ids(self) -> list:
        """Return the stored id index, or [] if it is missing or corrupted."""
        raw = self.store.get(self.layout.index_key)
        if raw is None:
            return []
        try:
            ids = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Error reading stored {self.kind_name} ids: {e}")
            return []
        if not isinstance(ids, list):
            logger.error(f"Stored {self.kind_name} id index is not a list")
            return []
        return ids

    def _write_ids(self, ids: list) -> None:
        self.store.set(self.layout.index_key, json.dumps(ids))

    def save_one(self, entity: dict) -> bool:
        """
        Store one entity under its own key and register its id.

        Returns:
            True if the entity was written, False if it was rejected
            (no id, or not serializable).
        """
        entity_id = entity.get("id") if isinstance(entity, dict) else None
        if not entity_id:
            log_rejected_entity(logger, self.kind_name, entity)
            return False

        try:
            text = codec.encode(self.layout.kind, entity)
        except CodecError as e:
            logger.error(f"Error saving {self.kind_name} {entity_id} to chunked storage: {e}")
            return False

        self.store.set(self.layout.entity_key(entity_id), text)

        ids = self.list_ids()
        if entity_id not in ids:
            ids.append(entity_id)
            self._write_ids(ids)

        logger.debug(f"Saved {self.kind_name} {entity_id} to chunked storage")
        return True

    def get_one(self, entity_id) -> dict | None:
        """Return the stored entity, or None if it is absent or undecodable."""
        raw = self.store.get(self.layout.entity_key(entity_id))
        return codec.decode_entity(self.layout.kind, raw)

    def remove_one(self, entity_id) -> None:
        """
        Remove an entity key and drop its id from the index.

        The id is also dropped from the aggregate keys of the kind, so a
        mirrored copy cannot bring the entity back.
        """
        self.store.remove(self.layout.entity_key(entity_id))

        ids = self.list_ids()
        remaining = [i for i in ids if i != entity_id]
        if remaining != ids:
            self._write_ids(remaining)

        for key in self.layout.aggregate_keys:
            LegacyAggregateStore(self.store, self.layout.kind, key).remove(entity_id)

        logger.debug(f"Removed {self.kind_name} {entity_id} from chunked storage")

    def list_all(self) -> list[dict]:
        """Return every stored entity in index order, skipping missing keys."""
        entities = []
        for entity_id in self.list_ids():
            entity = self.get_one(entity_id)
            if entity is not None:
                entities.append(entity)
            else:
                logger.debug(f"Index lists {self.kind_name} {entity_id} but its key is missing")
        return entities

    def replace_all(self, entities: list[dict]) -> None:
        """
        Make the chunked key-space hold exactly `entities`, in order.

        Keys whose stored text is already identical are not rewritten, ids
        no longer present are removed, and the index is only rewritten
        when it changed. Entities without an id are rejected and logged.
        """
        current_ids = self.list_ids()
        new_ids = []

        for entity in entities:
            entity_id = entity.get("id") if isinstance(entity, dict) else None
            if not entity_id:
                log_rejected_entity(logger, self.kind_name, entity)
                continue
            if entity_id in new_ids:
                continue
            try:
                text = codec.encode(self.layout.kind, entity)
            except CodecError as e:
                logger.error(f"Error saving {self.kind_name} {entity_id} to chunked storage: {e}")
                continue

            key = self.layout.entity_key(entity_id)
            if self.store.get(key) != text:
                self.store.set(key, text)
            new_ids.append(entity_id)

        keep = set(new_ids)
        for stale_id in current_ids:
            if stale_id not in keep:
                self.store.remove(self.layout.entity_key(stale_id))

        if new_ids != current_ids:
            self._write_ids(new_ids)

    def clear_all(self) -> None:
        """
        Remove every stored entity of this kind from both storage strategies.

        Removes each indexed entity key, then the index, then the legacy
        aggregate keys of the kind.
        """
        for entity_id in self.list_ids():
            self.store.remove(self.layout.entity_key(entity_id))
        self.store.remove(self.layout.index_key)
        for key in self.layout.aggregate_keys:
            self.store.remove(key)

        logger.info(f"Cleared all {self.kind_name} data from storage")
