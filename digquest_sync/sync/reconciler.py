"""
Reconciliation of local storage against server collections.

The Reconciler produces one authoritative, duplicate-free collection per
entity kind from a freshly fetched server collection and whatever is held
in local storage, then writes that collection back.

Merge rules:
    - Server copies always win: a local record whose id the server returned
      is discarded in favor of the server record.
    - Local-only records (ids the server did not return, typically created
      offline) are kept and appended after the server records.
    - Forum posts are ordered by created_at, newest first.
    - When both sides are empty nothing is written.

Nothing here raises to the caller. A failure while reading local data is
logged and the local side is treated as empty, and an unexpected failure
during the merge falls back to the server collection, so one kind's broken
cache never blocks another kind or the page that renders it.

Usage:
    reconciler = Reconciler(SqliteKeyValueStore(path))
    finds = reconciler.reconcile(EntityKind.FIND, api.fetch_collection("find"))
    reconciler.add_one(EntityKind.FIND, created_find)
    reconciler.remove_one(EntityKind.FIND, deleted_id)
"""

from datetime import datetime, timezone

from digquest_sync.core.logger import get_logger, log_rejected_entity
from digquest_sync.storage import codec
from digquest_sync.storage.chunked import ChunkedEntityStore
from digquest_sync.storage.kinds import EntityKind, KindLayout, layout_for
from digquest_sync.storage.kv_store import KeyValueStore
from digquest_sync.storage.legacy import LegacyAggregateStore
from digquest_sync.sync.migration import LegacyMigration, MigrationReport
from digquest_sync.sync.once import OnceLoader

logger = get_logger(__name__)


def sort_newest_first(entities: list[dict]) -> list[dict]:
    """
    Sort entities by created_at, newest first.

    Records without a usable created_at sort as if created now. The sort
    is stable, so records with equal timestamps keep their relative order.
    """
    now = datetime.now(timezone.utc).timestamp()

    def sort_key(entity: dict) -> float:
        timestamp = codec.timestamp_of(entity)
        return now if timestamp is None else timestamp

    return sorted(entities, key=sort_key, reverse=True)


class Reconciler:
    """
    Merge server collections with local storage and keep storage consistent.

    Args:
        store: The key-value store holding the local cache.
        dual_write: When True, the legacy aggregate key of each kind is
                    rewritten alongside the chunked keys.
        migration: Loader running the one-time legacy migration. Defaults
                   to a LegacyMigration over `store`, memoized per instance.
    """

    def __init__(
        self,
        store: KeyValueStore,
        dual_write: bool = True,
        migration: OnceLoader[MigrationReport] | None = None
    ) -> None:
        self.store = store
        self.dual_write = dual_write
        self._migration = migration or OnceLoader(LegacyMigration(store, dual_write).run)

    def chunked(self, kind: EntityKind | str) -> ChunkedEntityStore:
        return ChunkedEntityStore(self.store, layout_for(kind))

    def legacy(self, kind: EntityKind | str, key: str | None = None) -> LegacyAggregateStore:
        return LegacyAggregateStore(self.store, kind, key)

    def migrate(self) -> MigrationReport | None:
        """Run the legacy migration if it has not run yet for this reconciler."""
        try:
            return self._migration.load()
        except Exception:
            logger.exception("Legacy storage migration failed")
            return None

    def _read_locals(self, layout: KindLayout) -> list[dict]:
        """
        Read every locally stored record of a kind, deduplicated by id.

        Chunked kinds are read from the chunked store, the primary copy. The
        legacy mirror is not read for them, except for Locations, whose two
        aggregate keys are unioned after the chunked copy. Aggregate-only
        kinds (events) are read from their one key.
        """
        entities: list[dict] = []
        seen = set()

        if layout.chunked:
            for entity in self.chunked(layout.kind).list_all():
                seen.add(entity.get("id"))
                entities.append(entity)
            aggregate_keys = layout.aggregate_keys if layout.alias_keys else ()
        else:
            aggregate_keys = layout.aggregate_keys

        for key in aggregate_keys:
            for entity in self.legacy(layout.kind, key).get_all():
                entity_id = entity.get("id")
                if entity_id in seen:
                    continue
                seen.add(entity_id)
                entities.append(entity)

        return entities

    def _persist(self, layout: KindLayout, entities: list[dict]) -> None:
        if layout.chunked:
            self.chunked(layout.kind).replace_all(entities)
        if self.dual_write or not layout.chunked:
            self.legacy(layout.kind).save_all(entities)

    def reconcile(self, kind: EntityKind | str, server_collection: list[dict]) -> list[dict]:
        """
        Merge a server collection with local storage and persist the result.

        Args:
            kind: Entity kind of the collection.
            server_collection: Records as returned by the API, dates as strings
                               or datetimes.

        Returns:
            Server records (dates normalized to datetimes) followed by the
            local-only records. Posts are sorted newest first.
        """
        layout = layout_for(kind)
        kind_name = layout.kind.value
        server = _dedupe_by_id([
            codec.normalize(layout.kind, entity)
            for entity in server_collection
            if isinstance(entity, dict)
        ])

        try:
            if layout.chunked:
                self.migrate()
            local_entities = self._read_locals(layout)
        except Exception:
            logger.exception(f"Error reading local {kind_name} records, using server data only")
            local_entities = []

        try:
            if not server and not local_entities:
                logger.info(f"No {kind_name} records to synchronize")
                return []

            server_ids = {entity.get("id") for entity in server}
            local_only = [e for e in local_entities if e.get("id") not in server_ids]

            if local_only:
                logger.info(f"Found {len(local_only)} local {kind_name} records not on server")
                result = server + local_only
            else:
                result = server

            if layout.newest_first:
                result = sort_newest_first(result)

            self._persist(layout, result)
            logger.info(f"Synchronized {len(result)} {kind_name} records to storage")
            return result
        except Exception:
            logger.exception(f"Error synchronizing {kind_name} records")
            return server

    def reconcile_many(self, collections: dict) -> dict[EntityKind, list[dict]]:
        """
        Reconcile several kinds, each independently of the others.

        Unknown kinds are logged and skipped.
        """
        results: dict[EntityKind, list[dict]] = {}
        for raw_kind, server_collection in collections.items():
            try:
                kind = EntityKind(raw_kind)
            except ValueError:
                logger.error(f"Unknown entity kind '{raw_kind}', skipping")
                continue
            results[kind] = self.reconcile(kind, server_collection)
        return results

    def list_local(self, kind: EntityKind | str) -> list[dict]:
        """Return the locally stored records of a kind."""
        layout = layout_for(kind)
        if layout.chunked:
            self.migrate()
        entities = self._read_locals(layout)
        return sort_newest_first(entities) if layout.newest_first else entities

    def add_one(self, kind: EntityKind | str, entity: dict) -> bool:
        """
        Store a record right after it was created on the server.

        Posts go through save_post so the stored order stays newest first.

        Returns:
            True if the record was stored, False if it was rejected.
        """
        layout = layout_for(kind)
        if layout.newest_first:
            return self._save_sorted(layout, entity)

        if not _has_id(entity):
            log_rejected_entity(logger, layout.kind.value, entity)
            return False

        stored = True
        try:
            if layout.chunked:
                stored = self.chunked(layout.kind).save_one(entity)
            if stored and (self.dual_write or not layout.chunked):
                stored = self.legacy(layout.kind).upsert(entity, newest_first=True)
        except Exception:
            logger.exception(f"Failed to add {layout.kind.value} {entity['id']} to storage")
            return False

        if stored:
            logger.info(f"Added {layout.kind.value} {entity['id']} to storage")
        return stored

    def save_post(self, post: dict) -> bool:
        """
        Upsert a forum post by id and keep stored posts sorted newest first.

        Returns:
            True if the post was stored, False if it was rejected.
        """
        return self._save_sorted(layout_for(EntityKind.POST), post)

    def _save_sorted(self, layout: KindLayout, entity: dict) -> bool:
        if not _has_id(entity):
            log_rejected_entity(logger, layout.kind.value, entity)
            return False

        try:
            if layout.chunked:
                self.migrate()
            by_id = {e.get("id"): e for e in self._read_locals(layout)}
            by_id[entity["id"]] = codec.normalize(layout.kind, entity)
            ordered = sort_newest_first(list(by_id.values()))
            self._persist(layout, ordered)
        except Exception:
            logger.exception(f"Failed to save {layout.kind.value} {entity['id']} to storage")
            return False

        logger.info(f"Saved {layout.kind.value} {entity['id']} to storage, total: {len(ordered)}")
        return True

    def remove_one(self, kind: EntityKind | str, entity_id) -> None:
        """Remove a record from every storage key of its kind after a server delete."""
        layout = layout_for(kind)
        try:
            if layout.chunked:
                self.chunked(layout.kind).remove_one(entity_id)
            else:
                for key in layout.aggregate_keys:
                    self.legacy(layout.kind, key).remove(entity_id)
        except Exception:
            logger.exception(f"Failed to remove {layout.kind.value} {entity_id} from storage")
            return
        logger.info(f"Removed {layout.kind.value} {entity_id} from all storage systems")

    def clear_all(self, kind: EntityKind | str) -> None:
        """Remove every stored record of a kind, in both storage strategies."""
        layout = layout_for(kind)
        if layout.chunked:
            self.chunked(layout.kind).clear_all()
        else:
            for key in layout.aggregate_keys:
                self.store.remove(key)
            logger.info(f"Cleared all {layout.kind.value} data from storage")


def _has_id(entity: dict) -> bool:
    return isinstance(entity, dict) and bool(entity.get("id"))


def _dedupe_by_id(entities: list[dict]) -> list[dict]:
    """Keep the first record of each id. Records without an id are kept as-is."""
    seen = set()
    unique = []
    for entity in entities:
        entity_id = entity.get("id")
        if entity_id is not None:
            if entity_id in seen:
                continue
            seen.add(entity_id)
        unique.append(entity)
    return unique
