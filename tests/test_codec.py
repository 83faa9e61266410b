# tests/test_codec.py
"""Test the entity JSON codec"""

import json
import logging
from datetime import datetime, timezone

import pytest

from digquest_sync.core.exceptions import CodecError
from digquest_sync.storage import codec
from digquest_sync.storage.kinds import EntityKind


class TestTimestamps:
    """Test ISO-8601 handling"""

    def test_parse_javascript_iso_string(self):
        """Test the trailing Z produced by toISOString()"""
        parsed = codec.parse_timestamp("2024-03-01T12:00:00Z")
        assert parsed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_parse_offset(self):
        parsed = codec.parse_timestamp("2024-03-01T13:00:00+01:00")
        assert parsed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_unparseable_left_as_is(self):
        assert codec.parse_timestamp("yesterday") == "yesterday"
        assert codec.parse_timestamp(None) is None

    def test_timestamp_of_naive_is_utc(self):
        naive = {"created_at": datetime(2024, 3, 1, 12, 0)}
        aware = {"created_at": "2024-03-01T12:00:00Z"}
        assert codec.timestamp_of(naive) == codec.timestamp_of(aware)

    def test_timestamp_of_missing(self):
        assert codec.timestamp_of({"id": 1}) is None
        assert codec.timestamp_of({"created_at": "not a date"}) is None


class TestDecode:
    """Test decoding stored collections"""

    def test_dates_become_datetimes(self):
        raw = '[{"id": 1, "title": "Coin", "created_at": "2024-03-01T12:00:00Z"}]'
        finds = codec.decode(EntityKind.FIND, raw)
        assert finds == [{
            "id": 1,
            "title": "Coin",
            "created_at": datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        }]

    def test_event_date_is_parsed_for_events(self):
        raw = '[{"id": 4, "event_date": "2024-06-01T09:00:00Z"}]'
        events = codec.decode("event", raw)
        assert isinstance(events[0]["event_date"], datetime)

    def test_event_date_is_not_parsed_for_finds(self):
        raw = '[{"id": 4, "event_date": "2024-06-01T09:00:00Z"}]'
        finds = codec.decode("find", raw)
        assert finds[0]["event_date"] == "2024-06-01T09:00:00Z"

    def test_none_returns_fallback(self):
        assert codec.decode("find", None) == []
        assert codec.decode("find", None, [{"id": 9}]) == [{"id": 9}]

    def test_invalid_json_returns_fallback_copy(self, caplog):
        fallback = [{"id": 9}]
        with caplog.at_level(logging.ERROR):
            result = codec.decode("find", "{not json", fallback)

        assert result == fallback
        assert result is not fallback
        assert "Error parsing stored data" in caplog.text

    def test_non_array_is_rejected(self):
        result = codec.decode_result("find", '{"id": 1}')
        assert not result.ok
        assert isinstance(result.error, CodecError)
        assert codec.decode("find", '{"id": 1}') == []

    def test_decode_entity(self):
        entity = codec.decode_entity("post", '{"id": 2, "created_at": "2024-01-01T00:00:00Z"}')
        assert entity["id"] == 2
        assert isinstance(entity["created_at"], datetime)

    def test_decode_entity_invalid(self):
        assert codec.decode_entity("post", None) is None
        assert codec.decode_entity("post", "[1, 2]") is None
        assert codec.decode_entity("post", "{broken") is None


class TestEncode:
    """Test encoding entities"""

    def test_datetimes_written_as_iso(self):
        text = codec.encode("find", {"id": 1, "created_at": datetime(2024, 3, 1, tzinfo=timezone.utc)})
        assert json.loads(text) == {"id": 1, "created_at": "2024-03-01T00:00:00+00:00"}

    def test_round_trip_preserves_entities(self, sample_find):
        """Test decode(encode(x)) equals x modulo date representation"""
        finds = [sample_find, {"id": 2, "title": "Buckle", "created_at": None}]
        decoded = codec.decode("find", codec.encode("find", finds))
        assert decoded == [codec.normalize("find", f) for f in finds]

    def test_round_trip_of_normalized_is_exact(self, sample_location):
        normalized = [codec.normalize("location", sample_location)]
        assert codec.decode("location", codec.encode("location", normalized)) == normalized

    def test_input_not_modified(self, sample_find):
        original = dict(sample_find)
        codec.encode("find", sample_find)
        codec.normalize("find", sample_find)
        assert sample_find == original

    def test_unserializable_value(self):
        with pytest.raises(CodecError):
            codec.encode("find", {"id": 1, "tags": {"a", "b"}})
