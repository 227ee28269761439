"""Key-value storage backends for session persistence."""

import sqlite3
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from exceptions import StorageError

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """String key-value storage. Backends raise StorageError on I/O failure."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get a value, or None if the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Create or replace a value."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """List all stored keys."""
        pass


class InMemoryStorage(KeyValueStorage):
    """Process-local storage used for tests and as the failure fallback."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class SQLiteStorage(KeyValueStorage):
    """SQLite-based persistent key-value storage."""

    def __init__(self, db_path: str = "data/sessions.db"):
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file

        Raises:
            StorageError: If the database cannot be created
        """
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot initialize database at {self.db_path}: {e}") from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
        finally:
            conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    def get(self, key: str) -> Optional[str]:
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?",
                    (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    """,
                    (key, value)
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            conn = self._get_connection()
            try:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e

    def keys(self) -> List[str]:
        try:
            conn = self._get_connection()
            try:
                rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys: {e}") from e

        return [row["key"] for row in rows]
