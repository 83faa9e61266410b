"""
One-time migration of legacy aggregate keys into chunked storage.

Older clients kept each collection as a single JSON array, and Locations
were kept under two keys (map_locations and detectingMapLocations) after
a rename. The migration folds every record found in those keys into the
chunked store, which is the canonical copy:

    - Records whose id is already in the chunked store are skipped
      (the chunked copy wins).
    - Alias keys (detectingMapLocations) are removed once folded.
    - The primary legacy key is kept as a mirror while dual-write is on,
      and removed when it is off.

A store with nothing to fold is not written to at all.
"""

from dataclasses import dataclass, field

from digquest_sync.core.logger import get_logger
from digquest_sync.storage.chunked import ChunkedEntityStore
from digquest_sync.storage.kinds import SYNCED_KINDS, EntityKind, layout_for
from digquest_sync.storage.kv_store import KeyValueStore
from digquest_sync.storage.legacy import LegacyAggregateStore

logger = get_logger(__name__)


@dataclass
class MigrationReport:
    """
    Outcome of a migration run.

    Attributes:
        folded: Number of records copied into the chunked store, per kind.
        removed_keys: Aggregate keys deleted after folding.
    """
    folded: dict[str, int] = field(default_factory=dict)
    removed_keys: list[str] = field(default_factory=list)

    @property
    def total_folded(self) -> int:
        return sum(self.folded.values())


class LegacyMigration:
    """
    Fold legacy aggregate keys into chunked storage.

    Args:
        store: The key-value store holding both formats.
        dual_write: Keep the primary legacy key as a mirror when True.
    """

    def __init__(self, store: KeyValueStore, dual_write: bool = True) -> None:
        self.store = store
        self.dual_write = dual_write

    def run(self) -> MigrationReport:
        report = MigrationReport()
        for kind in SYNCED_KINDS:
            self.migrate_kind(kind, report)
        if report.total_folded or report.removed_keys:
            logger.info(
                f"Legacy migration folded {report.total_folded} records, "
                f"removed keys: {report.removed_keys or 'none'}"
            )
        return report

    def migrate_kind(self, kind: EntityKind, report: MigrationReport) -> None:
        layout = layout_for(kind)
        chunked = ChunkedEntityStore(self.store, layout)
        known_ids = {entity.get("id") for entity in chunked.list_all()}
        folded = 0

        for key in layout.aggregate_keys:
            aggregate = LegacyAggregateStore(self.store, kind, key)
            if not aggregate.exists():
                continue

            for entity in aggregate.get_all():
                entity_id = entity.get("id") if isinstance(entity, dict) else None
                if not entity_id or entity_id in known_ids:
                    continue
                if chunked.save_one(entity):
                    known_ids.add(entity_id)
                    folded += 1

            if key in layout.alias_keys or not self.dual_write:
                aggregate.clear()
                report.removed_keys.append(key)

        report.folded[kind.value] = folded
