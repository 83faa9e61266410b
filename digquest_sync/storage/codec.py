"""
JSON codec for stored entities.

Entities travel as JSON text on the wire and in the key-value store, with
dates as ISO-8601 strings. In memory they are plain dicts whose date fields
(created_at, and event_date for events) are datetime objects, so they can be
compared and sorted.

decode() and decode_entity() never raise: malformed text is logged and the
caller's fallback is returned. decode_result() is the typed variant that
reports the CodecError instead of logging it.
"""

import copy
import json
from datetime import date, datetime, timezone
from typing import Any

from digquest_sync.core.exceptions import CodecError, StorageResult
from digquest_sync.core.logger import get_logger
from digquest_sync.storage.kinds import EntityKind, layout_for

logger = get_logger(__name__)


def parse_timestamp(value: Any) -> Any:
    """
    Convert an ISO-8601 string to a datetime.

    Accepts the trailing 'Z' produced by JavaScript's toISOString().
    Anything that is not a parseable string is returned unchanged.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Leaving unparseable timestamp as-is: {value!r}")
        return value


def timestamp_of(entity: dict, field: str = "created_at") -> float | None:
    """
    Return a POSIX timestamp for a date field, or None if it has no usable date.

    Naive datetimes are read as UTC so that naive and aware values can be
    ordered together.
    """
    value = parse_timestamp(entity.get(field))
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp()
    return None


def _normalize_in_place(entity: dict, date_fields: tuple[str, ...]) -> dict:
    for field in date_fields:
        if field in entity:
            entity[field] = parse_timestamp(entity[field])
    return entity


def normalize(kind: EntityKind | str, entity: dict) -> dict:
    """Return a deep copy of entity with its date fields parsed."""
    return _normalize_in_place(copy.deepcopy(entity), layout_for(kind).date_fields)


def decode_result(kind: EntityKind | str, raw: str | None) -> StorageResult[list[dict]]:
    """
    Decode a stored JSON array of entities.

    Returns:
        StorageResult with the decoded list ([] when raw is None), or with a
        CodecError when raw is not valid JSON or not a JSON array.
    """
    if raw is None:
        return StorageResult(value=[])

    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        return StorageResult(error=CodecError(
            f"Invalid JSON for {EntityKind(kind).value} collection: {e}",
            details={"kind": EntityKind(kind).value, "original_error": str(e)}
        ))

    if not isinstance(parsed, list):
        return StorageResult(error=CodecError(
            f"Expected a JSON array for {EntityKind(kind).value} collection, "
            f"got {type(parsed).__name__}",
            details={"kind": EntityKind(kind).value}
        ))

    date_fields = layout_for(kind).date_fields
    return StorageResult(value=[
        _normalize_in_place(item, date_fields) if isinstance(item, dict) else item
        for item in parsed
    ])


def decode(kind: EntityKind | str, raw: str | None, fallback: list | None = None) -> list:
    """
    Decode a stored JSON array of entities, falling back on any failure.

    Args:
        kind: Entity kind, selects which fields are dates.
        raw: JSON text, or None when nothing is stored.
        fallback: Returned (as a shallow copy) when raw is None or invalid.

    Returns:
        The decoded list with date fields as datetimes.
    """
    fallback = [] if fallback is None else fallback
    if raw is None:
        return list(fallback)

    result = decode_result(kind, raw)
    if not result.ok:
        logger.error(f"Error parsing stored data: {result.error}")
        return list(fallback)
    return result.value


def decode_entity(kind: EntityKind | str, raw: str | None) -> dict | None:
    """Decode a single stored entity. Returns None if raw is absent or invalid."""
    if raw is None:
        return None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(f"Error parsing stored {EntityKind(kind).value}: {e}")
        return None
    if not isinstance(parsed, dict):
        logger.error(f"Stored {EntityKind(kind).value} is not a JSON object")
        return None
    return _normalize_in_place(parsed, layout_for(kind).date_fields)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode(kind: EntityKind | str, value: Any) -> str:
    """
    Serialize an entity or a list of entities to JSON text.

    Dates are written as ISO-8601 strings. The input is not modified, and
    the returned string is an independent snapshot of it.

    Raises:
        CodecError: If value contains something JSON cannot represent.
    """
    try:
        return json.dumps(value, default=_json_default)
    except (TypeError, ValueError) as e:
        raise CodecError(
            f"Cannot encode {EntityKind(kind).value}: {e}",
            details={"kind": EntityKind(kind).value, "original_error": str(e)}
        ) from e
