# tests/test_migration.py
"""Test the legacy key migration and the one-shot loader"""

import json
from unittest.mock import Mock, patch

import pytest

from digquest_sync.sync import LegacyMigration, OnceLoader, Reconciler


class TestLegacyMigration:
    """Test folding aggregate keys into chunked storage"""

    def test_folds_legacy_finds(self, memory_store):
        memory_store.set("finds_data", json.dumps([{"id": 1, "title": "A"}, {"id": 2, "title": "B"}]))

        report = LegacyMigration(memory_store).run()

        assert report.folded["find"] == 2
        assert json.loads(memory_store.get("finds_ids_list")) == [1, 2]
        assert "finds_data" in memory_store
        assert report.removed_keys == []

    def test_chunked_copy_wins(self, memory_store, reconciler):
        reconciler.chunked("find").save_one({"id": 1, "title": "Chunked"})
        memory_store.set("finds_data", json.dumps([{"id": 1, "title": "Legacy"}]))

        report = LegacyMigration(memory_store).run()

        assert report.folded["find"] == 0
        assert reconciler.chunked("find").get_one(1)["title"] == "Chunked"

    def test_alias_key_is_removed(self, memory_store):
        memory_store.set("detectingMapLocations", json.dumps([{"id": 3, "name": "Field"}]))

        report = LegacyMigration(memory_store).run()

        assert report.folded["location"] == 1
        assert report.removed_keys == ["detectingMapLocations"]
        assert "detectingMapLocations" not in memory_store

    def test_primary_key_removed_without_dual_write(self, memory_store):
        memory_store.set("forum_posts", json.dumps([{"id": 1, "created_at": "2024-01-01T00:00:00Z"}]))

        report = LegacyMigration(memory_store, dual_write=False).run()

        assert report.removed_keys == ["forum_posts"]
        assert "forum_posts" not in memory_store
        assert json.loads(memory_store.get("forum_posts_ids_list")) == [1]

    def test_records_without_id_are_skipped(self, memory_store):
        memory_store.set("finds_data", json.dumps([{"title": "no id"}, "junk", {"id": 4}]))

        report = LegacyMigration(memory_store).run()

        assert report.folded["find"] == 1
        assert report.total_folded == 1

    def test_nothing_to_fold_writes_nothing(self, memory_store):
        with patch.object(memory_store, "_write", wraps=memory_store._write) as write:
            report = LegacyMigration(memory_store).run()

        write.assert_not_called()
        assert report.total_folded == 0

    def test_reconciler_runs_migration_once(self, memory_store):
        memory_store.set("finds_data", json.dumps([{"id": 1}]))
        reconciler = Reconciler(memory_store)

        first = reconciler.migrate()
        second = reconciler.migrate()

        assert first is second
        assert first.folded["find"] == 1

    def test_separate_reconcilers_do_not_share_state(self, memory_store):
        first = Reconciler(memory_store).migrate()
        memory_store.set("detectingMapLocations", json.dumps([{"id": 3}]))
        second = Reconciler(memory_store).migrate()

        assert first.total_folded == 0
        assert second.folded["location"] == 1


class TestOnceLoader:
    """Test the memoized loader"""

    def test_runs_once(self):
        loader = Mock(return_value="report")
        once = OnceLoader(loader)

        assert not once.loaded
        assert once.load() == "report"
        assert once.load() == "report"
        assert once.loaded
        loader.assert_called_once()

    def test_error_is_memoized(self):
        loader = Mock(side_effect=RuntimeError("broken store"))
        once = OnceLoader(loader)

        with pytest.raises(RuntimeError, match="broken store"):
            once.load()
        with pytest.raises(RuntimeError, match="broken store"):
            once.load()
        loader.assert_called_once()

    def test_reset_runs_again(self):
        loader = Mock(side_effect=["first", "second"])
        once = OnceLoader(loader)

        assert once.load() == "first"
        once.reset()
        assert once.load() == "second"
