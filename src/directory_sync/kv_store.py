"""
Persistent key/value tiers for the user cache.

DuckDBKeyValueStore keeps cached user records in a DuckDB file so that they
survive restarts. InMemoryKeyValueStore offers the same interface for
memory-only deployments and tests.
"""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import duckdb

from .sync.interfaces import PersistentStore

logger = logging.getLogger(__name__)


class DuckDBKeyValueStore(PersistentStore):
    """
    Key/value store with per-item expiry on top of a DuckDB table.

    Values are stored as JSON text. Expired rows are treated as misses and
    removed lazily when read, or in bulk by ``purge_expired``.
    """

    def __init__(self, db_path: Path, clock: Optional[Callable[[], float]] = None):
        """
        Initialize the store.

        Args:
            db_path: Path to the DuckDB database file
            clock: Wall-clock source returning epoch seconds
        """
        self.db_path = db_path
        self.conn: Optional[duckdb.DuckDBPyConnection] = None
        self._clock = clock or time.time
        self._lock = threading.Lock()

    def __enter__(self) -> 'DuckDBKeyValueStore':
        """
        Context manager entry: open the connection and create the schema.

        Returns:
            Self for use in with statement

        Raises:
            Exception: If connecting or creating the schema fails
        """
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.close()
        except Exception as e:
            logger.warning(f"Error while closing key/value store: {e}", exc_info=True)

    def open(self) -> None:
        """Open the connection if it is not open yet and ensure the schema exists."""
        if self.conn is not None:
            return
        try:
            self.conn = duckdb.connect(str(self.db_path))
            logger.info(f"Connected to key/value store at {self.db_path}")
            self._create_schema()
        except Exception as e:
            logger.error(f"Failed to initialize key/value store at {self.db_path}: {e}", exc_info=True)
            raise

    def _create_schema(self) -> None:
        self._require_connection().execute("""
            CREATE TABLE IF NOT EXISTS kv_cache (
                key VARCHAR NOT NULL PRIMARY KEY,
                value VARCHAR NOT NULL,
                expires_at DOUBLE NOT NULL
            )
        """)
        logger.debug("Key/value schema created or verified")

    def get(self, key: str) -> Optional[Any]:
        """
        Return the value stored under ``key``.

        Args:
            key: Cache key

        Returns:
            The decoded value, or None if the key is unknown or expired

        Raises:
            RuntimeError: If the connection is not established
        """
        with self._lock:
            conn = self._require_connection()
            row = conn.execute(
                "SELECT value, expires_at FROM kv_cache WHERE key = ?", [key]
            ).fetchone()

            if row is None:
                return None

            value, expires_at = row
            if expires_at <= self._clock():
                conn.execute("DELETE FROM kv_cache WHERE key = ?", [key])
                logger.debug(f"Key expired: {key}")
                return None

        return json.loads(value)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """
        Insert or replace ``key``.

        Raises:
            TypeError: If the value is not JSON serializable
            RuntimeError: If the connection is not established
        """
        payload = json.dumps(value)
        expires_at = self._clock() + ttl_seconds

        with self._lock:
            self._require_connection().execute(
                "INSERT OR REPLACE INTO kv_cache (key, value, expires_at) VALUES (?, ?, ?)",
                [key, payload, expires_at]
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._require_connection().execute("DELETE FROM kv_cache WHERE key = ?", [key])

    def clear(self) -> None:
        with self._lock:
            self._require_connection().execute("DELETE FROM kv_cache")
        logger.info("Key/value store cleared")

    def purge_expired(self) -> int:
        """
        Delete every expired row.

        Returns:
            Number of rows removed
        """
        now = self._clock()
        with self._lock:
            conn = self._require_connection()
            count = conn.execute(
                "SELECT COUNT(*) FROM kv_cache WHERE expires_at <= ?", [now]
            ).fetchone()[0]
            conn.execute("DELETE FROM kv_cache WHERE expires_at <= ?", [now])

        if count:
            logger.info(f"Purged {count} expired keys")
        return count

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._lock:
            if self.conn is not None:
                try:
                    self.conn.close()
                    logger.debug("Key/value store connection closed")
                except Exception as e:
                    logger.warning(f"Error closing key/value store connection: {e}", exc_info=True)
                finally:
                    self.conn = None

    def _require_connection(self) -> duckdb.DuckDBPyConnection:
        if self.conn is None:
            raise RuntimeError("Key/value store connection not established")
        return self.conn


class InMemoryKeyValueStore(PersistentStore):
    """Process-local key/value store with per-item expiry."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._items: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            payload, expires_at = item
            if expires_at <= self._clock():
                del self._items[key]
                return None
        return json.loads(payload)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        # Serialized so callers never share mutable state with the store.
        payload = json.dumps(value)
        with self._lock:
            self._items[key] = (payload, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
