"""
Entity kinds and their storage key layout.

Key names are shared with the DigQuest web client, so a store populated by
one can be read by the other:

    find      finds_data_<id>, index finds_ids_list, aggregate finds_data
    location  map_locations_<id>, index map_locations_ids_list,
              aggregates map_locations and detectingMapLocations
    post      forum_posts_<id>, index forum_posts_ids_list, aggregate forum_posts
    event     aggregate events_data only
"""

from dataclasses import dataclass
from enum import Enum


USER_CACHE_KEY = "user_cache"


class EntityKind(str, Enum):
    """Entity kinds handled by the synchronization layer."""
    FIND = "find"
    LOCATION = "location"
    POST = "post"
    EVENT = "event"


@dataclass(frozen=True)
class KindLayout:
    """
    Storage layout of one entity kind.

    Attributes:
        kind: The entity kind.
        entity_prefix: Prefix of per-entity keys (<prefix>_<id>), or None for
                       kinds that are only stored as one aggregate.
        index_key: Key holding the JSON list of stored ids, or None.
        legacy_key: Key holding the whole collection as one JSON array.
        alias_keys: Older aggregate keys holding the same collection. They
                    are read and removed by the legacy migration.
        date_fields: Fields converted between ISO strings and datetimes.
        newest_first: True when collections of this kind are kept sorted
                      by created_at, newest first.
    """
    kind: EntityKind
    entity_prefix: str | None
    index_key: str | None
    legacy_key: str
    alias_keys: tuple[str, ...] = ()
    date_fields: tuple[str, ...] = ("created_at",)
    newest_first: bool = False

    @property
    def chunked(self) -> bool:
        return self.entity_prefix is not None

    @property
    def aggregate_keys(self) -> tuple[str, ...]:
        return (self.legacy_key,) + self.alias_keys

    def entity_key(self, entity_id: int) -> str:
        return f"{self.entity_prefix}_{entity_id}"


LAYOUTS: dict[EntityKind, KindLayout] = {
    EntityKind.FIND: KindLayout(
        kind=EntityKind.FIND,
        entity_prefix="finds_data",
        index_key="finds_ids_list",
        legacy_key="finds_data",
    ),
    EntityKind.LOCATION: KindLayout(
        kind=EntityKind.LOCATION,
        entity_prefix="map_locations",
        index_key="map_locations_ids_list",
        legacy_key="map_locations",
        alias_keys=("detectingMapLocations",),
    ),
    EntityKind.POST: KindLayout(
        kind=EntityKind.POST,
        entity_prefix="forum_posts",
        index_key="forum_posts_ids_list",
        legacy_key="forum_posts",
        newest_first=True,
    ),
    EntityKind.EVENT: KindLayout(
        kind=EntityKind.EVENT,
        entity_prefix=None,
        index_key=None,
        legacy_key="events_data",
        date_fields=("created_at", "event_date"),
    ),
}

SYNCED_KINDS: tuple[EntityKind, ...] = (EntityKind.FIND, EntityKind.LOCATION, EntityKind.POST)


def layout_for(kind: EntityKind | str) -> KindLayout:
    """
    Return the layout of a kind, accepting the enum or its string value.

    Raises:
        ValueError: If kind is not a known entity kind.
    """
    return LAYOUTS[EntityKind(kind)]
