"""
Persistent string key-value stores for digquest-sync.

Every other storage component talks to a KeyValueStore, the Python
counterpart of browser localStorage: synchronous, string keys, string
values. Two backends are provided:

    MemoryKeyValueStore: a dict, with an optional byte quota so that
        "quota exceeded" failures can be reproduced.
    SqliteKeyValueStore: a thread-safe SQLite file with a single
        `kv_entries` table, used by the CLI.

Contract:
    get(key) -> str | None, set(key, value), remove(key) never raise. Any
    backend failure is logged (see log_storage_failure) and treated as a
    miss or a no-op. read/write/delete are the typed variants returning a
    StorageResult, so callers can tell "nothing stored" from "storage failed".

Usage:
    store = SqliteKeyValueStore(Path("~/.digquest/storage.db").expanduser())
    store.set("finds_ids_list", "[1, 2]")
    store.get("finds_ids_list")  # '[1, 2]'
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

from digquest_sync.core.exceptions import StorageError, StorageResult
from digquest_sync.core.logger import get_logger, log_storage_failure

logger = get_logger(__name__)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT
);
"""


class KeyValueStore(ABC):
    """
    Base class for synchronous string key-value stores.

    Subclasses implement _read/_write/_delete/_keys and may raise anything
    from them. The public methods are the error boundary.
    """

    @abstractmethod
    def _read(self, key: str) -> str | None:
        ...

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    @abstractmethod
    def _keys(self) -> list[str]:
        ...

    def read(self, key: str) -> StorageResult[str]:
        """Read a key. value is None when the key is absent."""
        try:
            return StorageResult(value=self._read(key))
        except Exception as e:
            return self._failure("read", key, e)

    def write(self, key: str, value: str) -> StorageResult[None]:
        """Write a key, replacing any existing value."""
        try:
            self._write(key, value)
            return StorageResult()
        except Exception as e:
            return self._failure("write", key, e)

    def delete(self, key: str) -> StorageResult[None]:
        """Delete a key. Deleting an absent key is not an error."""
        try:
            self._delete(key)
            return StorageResult()
        except Exception as e:
            return self._failure("delete", key, e)

    def get(self, key: str) -> str | None:
        return self.read(key).value

    def set(self, key: str, value: str) -> None:
        self.write(key, value)

    def remove(self, key: str) -> None:
        self.delete(key)

    def keys(self) -> list[str]:
        """Return all stored keys, or an empty list if the store is unreadable."""
        try:
            return self._keys()
        except Exception as e:
            self._failure("read", "*", e)
            return []

    @staticmethod
    def _failure(operation: str, key: str, error: Exception) -> StorageResult:
        if isinstance(error, StorageError):
            storage_error = error
        else:
            storage_error = StorageError(
                f"Storage {operation} failed for key '{key}': {error}",
                details={"original_error": str(error)},
                operation=operation,
                key=key
            )
        log_storage_failure(logger, operation, key, str(error))
        return StorageResult(error=storage_error)


class MemoryKeyValueStore(KeyValueStore):
    """
    In-memory store backed by a dict.

    Args:
        quota_bytes: Optional limit on the total UTF-8 size of all keys and
                     values. A write that would exceed it raises StorageError
                     internally (surfaced as a logged no-op), the same way
                     browser storage reports QuotaExceededError.
    """

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            current = self._used_bytes() - self._entry_bytes(key, self._data.get(key))
            needed = current + self._entry_bytes(key, value)
            if needed > self.quota_bytes:
                raise StorageError(
                    f"quota exceeded: {needed} > {self.quota_bytes} bytes",
                    details={"needed": needed, "quota": self.quota_bytes},
                    operation="write",
                    key=key
                )
        self._data[key] = value

    def _delete(self, key: str) -> None:
        self._data.pop(key, None)

    def _keys(self) -> list[str]:
        return list(self._data)

    def _used_bytes(self) -> int:
        return sum(self._entry_bytes(k, v) for k, v in self._data.items())

    @staticmethod
    def _entry_bytes(key: str, value: str | None) -> int:
        if value is None:
            return 0
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class SqliteKeyValueStore(KeyValueStore):
    """
    Thread-safe SQLite key-value store.

    Uses a single persistent connection with thread locking for safety.
    All operations acquire self._lock before executing.

    Raises:
        StorageError: From the constructor only, if the parent directory
                      is missing or the database cannot be initialized.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        in_memory = str(db_path) == ":memory:"
        if not in_memory and not db_path.parent.exists():
            raise StorageError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            with self._lock, self._get_connection() as conn:
                conn.executescript(_SCHEMA_SQL)
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to initialize storage database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SqliteKeyValueStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _read(self, key: str) -> str | None:
        with self._lock, self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_entries WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def _write(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock, self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO kv_entries (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, now)
            )
            conn.commit()

    def _delete(self, key: str) -> None:
        with self._lock, self._get_connection() as conn:
            conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
            conn.commit()

    def _keys(self) -> list[str]:
        with self._lock, self._get_connection() as conn:
            rows = conn.execute("SELECT key FROM kv_entries ORDER BY key").fetchall()
        return [row[0] for row in rows]
