# tests/test_legacy.py
"""Test whole-collection storage, events and the user cache"""

import json
from datetime import datetime
from unittest.mock import patch

from digquest_sync.core.exceptions import CodecError
from digquest_sync.storage import EventStore, LegacyAggregateStore, UserCache


class TestLegacyAggregateStore:
    """Test one collection stored under one key"""

    def test_save_and_get_all(self, memory_store, sample_find):
        finds = LegacyAggregateStore(memory_store, "find")
        assert finds.save_all([sample_find])

        stored = finds.get_all()
        assert stored[0]["id"] == 1
        assert isinstance(stored[0]["created_at"], datetime)
        assert finds.exists()

    def test_missing_key_is_empty(self, memory_store):
        finds = LegacyAggregateStore(memory_store, "find")
        assert finds.get_all() == []
        assert not finds.exists()

    def test_get_result_reports_corruption(self, memory_store):
        memory_store.set("finds_data", "not json")
        result = LegacyAggregateStore(memory_store, "find").get_result()
        assert isinstance(result.error, CodecError)

    def test_non_object_elements_are_dropped(self, memory_store):
        memory_store.set("finds_data", json.dumps([1, None, "x", {"id": 2}]))
        finds = LegacyAggregateStore(memory_store, "find")

        assert finds.get_all() == [{"id": 2}]

        finds.upsert({"id": 3})
        finds.remove(2)
        assert finds.get_all() == [{"id": 3}]

    def test_upsert_newest_first(self, memory_store):
        finds = LegacyAggregateStore(memory_store, "find")
        finds.upsert({"id": 1, "title": "A"})
        finds.upsert({"id": 2, "title": "B"})
        finds.upsert({"id": 1, "title": "A2"})

        assert [(f["id"], f["title"]) for f in finds.get_all()] == [(1, "A2"), (2, "B")]

    def test_upsert_in_place(self, memory_store):
        finds = LegacyAggregateStore(memory_store, "find")
        finds.save_all([{"id": 1, "title": "A"}, {"id": 2, "title": "B"}])
        finds.upsert({"id": 1, "title": "A2"}, newest_first=False)
        finds.upsert({"id": 3, "title": "C"}, newest_first=False)

        assert [f["id"] for f in finds.get_all()] == [1, 2, 3]

    def test_upsert_without_id(self, memory_store):
        assert not LegacyAggregateStore(memory_store, "find").upsert({"title": "no id"})
        assert memory_store.get("finds_data") is None

    def test_remove(self, memory_store):
        finds = LegacyAggregateStore(memory_store, "find")
        finds.save_all([{"id": 1}, {"id": 2}])
        finds.remove(1)
        assert [f["id"] for f in finds.get_all()] == [2]

    def test_remove_on_missing_key_does_not_create_it(self, memory_store):
        LegacyAggregateStore(memory_store, "location", "detectingMapLocations").remove(1)
        assert "detectingMapLocations" not in memory_store

    def test_unchanged_collection_is_not_rewritten(self, memory_store):
        finds = LegacyAggregateStore(memory_store, "find")
        finds.save_all([{"id": 1}])
        with patch.object(memory_store, "_write", wraps=memory_store._write) as write:
            assert finds.save_all([{"id": 1}])
        write.assert_not_called()


class TestEventStore:
    """Test aggregate-only event storage"""

    def test_save_and_load_events(self, memory_store):
        events = EventStore(memory_store)
        events.save_events([{"id": 1, "title": "Club dig", "event_date": "2024-06-01T09:00:00Z"}])

        stored = events.get_stored_events()
        assert stored[0]["title"] == "Club dig"
        assert isinstance(stored[0]["event_date"], datetime)
        assert "events_data" in memory_store


class TestUserCache:
    """Test the cached user list"""

    def test_remove_user(self, memory_store):
        memory_store.set("user_cache", json.dumps([{"id": 1, "username": "ann"}, {"id": 2, "username": "bob"}]))
        cache = UserCache(memory_store)

        cache.remove_user(1)

        assert cache.get_users() == [{"id": 2, "username": "bob"}]

    def test_remove_user_without_cache(self, memory_store):
        UserCache(memory_store).remove_user(1)
        assert "user_cache" not in memory_store

    def test_clear(self, memory_store):
        memory_store.set("user_cache", "[]")
        UserCache(memory_store).clear()
        assert UserCache(memory_store).get_users() == []
