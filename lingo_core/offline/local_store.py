# =============================================================================
# lingo_core/offline/local_store.py
# Durable Key-Value Storage for Offline Operations
# =============================================================================
"""
Key-value stores standing in for browser localStorage.

- LocalStore: SQLite-backed, survives restarts
- MemoryStore: dict-backed, for tests and throwaway sessions

Values are opaque strings; (de)serialization happens at the caller's boundary
so that "no data" (None) stays distinct from "corrupt data".
"""

from __future__ import annotations
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
import logging

from lingo_core.errors import PersistenceError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract string key-value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """List keys, optionally filtered by prefix."""

    def close(self) -> None:
        """Release any underlying resources."""


class MemoryStore(KeyValueStore):
    """In-memory store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class LocalStore(KeyValueStore):
    """
    SQLite key-value store.

    Each thread gets its own connection; all statements run inside a
    transaction and sqlite errors surface as PersistenceError.
    """

    DEFAULT_DB_PATH = Path("local_data") / "lingoquest.db"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize local store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._initialized = False
        self._init_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Cannot open local store: {e}",
                backend=str(self.db_path),
            ) from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(
                f"Local store operation failed: {e}",
                backend=str(self.db_path),
            ) from e

    def initialize(self) -> None:
        """Create the schema if needed."""
        with self._init_lock:
            if self._initialized:
                return
            with self.transaction() as conn:
                conn.execute(self.SCHEMA)
            self._initialized = True
            logger.info(f"Local store initialized at: {self.db_path}")

    def get(self, key: str) -> Optional[str]:
        self.initialize()
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT value FROM app_settings WHERE key = ?",
                [key]
            ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self.initialize()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, value, datetime.now().isoformat()]
            )

    def delete(self, key: str) -> bool:
        self.initialize()
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM app_settings WHERE key = ?", [key])
            return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> List[str]:
        self.initialize()
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT key FROM app_settings WHERE substr(key, 1, ?) = ? ORDER BY key",
                [len(prefix), prefix]
            ).fetchall()
        return [row["key"] for row in rows]

    def close(self) -> None:
        """Close this thread's database connection."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None


class StoredTokenProvider:
    """Reads the bearer token the auth flow left in shared storage."""

    def __init__(self, store: KeyValueStore, key: str = "auth_token"):
        self.store = store
        self.key = key

    def __call__(self) -> Optional[str]:
        try:
            token = self.store.get(self.key)
        except PersistenceError as e:
            logger.warning(f"Auth token unavailable: {e}")
            return None
        return token or None
