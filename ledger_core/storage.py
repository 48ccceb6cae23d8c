"""
Storage Backend Module

Provides the durable key-value store interface the ledger snapshot lives in,
with in-memory (testing) and SQLite (persistence) implementations. Values are
opaque strings; backend failures surface as PersistenceUnavailable.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Union
from datetime import datetime, timezone
from pathlib import Path
import sqlite3
import threading

from .config import LedgerConfig
from .errors import PersistenceUnavailable


class KeyValueStore(ABC):
    """Abstract interface for durable key-value backends"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None when absent"""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value"""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key; returns False if it was not there"""
        pass

    def close(self) -> None:
        """Close storage connection (default no-op)"""
        pass


class InMemoryStore(KeyValueStore):
    """In-memory store for testing"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise PersistenceUnavailable(f"Value for {key} must be a string")
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self):
        """Stored keys, for debugging/inspection"""
        with self._lock:
            return list(self._data.keys())


class SQLiteStore(KeyValueStore):
    """SQLite key-value store for persistence across sessions"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None
        try:
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.commit()
        except sqlite3.Error as e:
            raise PersistenceUnavailable(f"Cannot open {self.db_path}: {e}") from e

    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            raise PersistenceUnavailable("Store is closed")
        return self._connection

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                row = self._conn().execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise PersistenceUnavailable(f"Cannot read {key}: {e}") from e
            return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, now)
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceUnavailable(f"Cannot write {key}: {e}") from e

    def delete(self, key: str) -> bool:
        with self._lock:
            conn = self._conn()
            try:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceUnavailable(f"Cannot delete {key}: {e}") from e
            return cursor.rowcount > 0

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_store(config: LedgerConfig) -> KeyValueStore:
    """Build the store selected by configuration"""
    backend = config.storage_backend.lower()
    if backend == "memory":
        return InMemoryStore()
    if backend == "sqlite":
        return SQLiteStore(config.storage_path)
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")
