"""Durable key-value backings for device state.

Values are plain strings; callers JSON-encode structured data with
:func:`scansync.db.to_json` before storing it.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from . import db


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, keys: Iterable[str]) -> None: ...


class SqliteKeyValueStore:
    """KeyValueStore backed by a single SQLite table; every write commits."""

    def __init__(self, db_path: Path | str = db.DEFAULT_DB_PATH, *, check_same_thread: bool = False):
        self.db_path = Path(db_path).expanduser()
        self.conn = db.connect(self.db_path, check_same_thread=check_same_thread)
        db.initialize_schema(self.conn)
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            row = self.conn.execute("SELECT value FROM kv_entries WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO kv_entries(key, value, updated_at)
                VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value),
            )
            self.conn.commit()

    def delete(self, keys: Iterable[str]) -> None:
        targets = [(key,) for key in keys]
        if not targets:
            return
        with self._lock:
            try:
                self.conn.executemany("DELETE FROM kv_entries WHERE key = ?", targets)
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    def keys(self) -> list[str]:
        with self._lock:
            rows = self.conn.execute("SELECT key FROM kv_entries ORDER BY key").fetchall()
        return [str(row["key"]) for row in rows]

    def close(self) -> None:
        self.conn.close()


class MemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self.data[key] = value

    def delete(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self.data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self.data)

    def close(self) -> None:
        return
