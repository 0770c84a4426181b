"""
Key-value store protocol and backends (SYNC-ONLY).

The durable slot needs exactly three operations over string keys and
string values: get, set, remove. Backends implement the
:class:`KeyValueStore` protocol and wrap every backend-specific failure in
:class:`~courier.core.errors.StorageError`, so callers handle one
exception type regardless of where bytes live.

Architecture:
    ::

        DurableSlot (never raises)
              │
              │ uses Protocol
              ▼
        ┌────────────────────────────────────────────┐
        │        KeyValueStore Protocol (SYNC)        │
        │        get() | set() | remove()             │
        └────────────────────────────────────────────┘
              │                 │                │
        ┌─────▼──────┐  ┌───────▼──────┐  ┌──────▼───────┐
        │ Sqlite     │  │ File         │  │ Memory       │
        │ (default)  │  │ (one file    │  │ (tests,      │
        │            │  │  per key)    │  │  ephemeral)  │
        └────────────┘  └──────────────┘  └──────────────┘

Guardrails:
    - SYNC-ONLY: slot operations are synchronous by contract
    - Backends raise StorageError, never sqlite3/OSError directly
    - ``remove`` of a missing key is a no-op

Tags:
    storage, protocol, sqlite, key-value, courier
"""

from __future__ import annotations

import os
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote

from courier.core.errors import StorageError
from courier.core.settings import CourierSettings, StorageBackend


@runtime_checkable
class KeyValueStore(Protocol):
    """Persistent string key-value store. SYNC.

    Implementations raise :class:`StorageError` on any backend failure.
    """

    def get(self, key: str) -> str | None:
        """Return the stored value or ``None``."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, overwriting."""
        ...

    def remove(self, key: str) -> None:
        """Remove ``key``; no-op when absent."""
        ...


class MemoryKeyValueStore:
    """Dict-backed store. Survives nothing, useful in tests."""

    name = "memory"

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._data)


class SqliteKeyValueStore:
    """Single-table sqlite store, the default durable backend.

    Each ``set`` commits immediately so a process killed right after
    ``DurableSlot.write`` still finds the payload on the next start.
    """

    name = "sqlite"

    _SCHEMA = "CREATE TABLE IF NOT EXISTS kv_store (key TEXT PRIMARY KEY, value TEXT NOT NULL)"

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        self._lock = threading.Lock()
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.execute(self._SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open sqlite store at {self._path}", cause=e) from e

    def get(self, key: str) -> str | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError("sqlite read failed", cause=e, key=key) from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (key, value),
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError("sqlite write failed", cause=e, key=key) from e

    def remove(self, key: str) -> None:
        try:
            with self._lock:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError("sqlite delete failed", cause=e, key=key) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __repr__(self) -> str:
        return f"SqliteKeyValueStore({self._path!r})"


class FileKeyValueStore:
    """One file per key inside ``directory``.

    Writes go to a temporary file in the same directory followed by
    :func:`os.replace`, so a reader never sees a half-written value.
    """

    name = "file"

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path_for(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> str | None:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError("file read failed", cause=e, key=key) from e

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError("file write failed", cause=e, key=key) from e

    def remove(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError("file delete failed", cause=e, key=key) from e

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"FileKeyValueStore({str(self._dir)!r})"


def build_store(settings: CourierSettings) -> KeyValueStore:
    """Create the store selected by ``settings.storage_backend``."""
    backend = settings.storage_backend
    if backend == StorageBackend.SQLITE:
        return SqliteKeyValueStore(settings.sqlite_path)
    if backend == StorageBackend.FILE:
        return FileKeyValueStore(settings.data_dir / "slots")
    return MemoryKeyValueStore()


__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "FileKeyValueStore",
    "build_store",
]
