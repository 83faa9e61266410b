"""
Synchronization of the local cache with server collections.

    reconciler: merge server + local, persist, add/remove/save_post
    migration:  one-time fold of legacy aggregate keys into chunked storage
    once:       memoized one-shot loader used to run the migration
"""

from digquest_sync.sync.migration import LegacyMigration, MigrationReport
from digquest_sync.sync.once import OnceLoader
from digquest_sync.sync.reconciler import Reconciler, sort_newest_first

__all__ = [
    "Reconciler",
    "sort_newest_first",
    "LegacyMigration",
    "MigrationReport",
    "OnceLoader",
]
