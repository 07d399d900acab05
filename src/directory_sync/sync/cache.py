"""Two-tier user cache: in-process map backed by a persistent key/value store."""

import copy
import threading
import time
from typing import Callable, Dict, Optional

from .exceptions import CacheStoreError
from .interfaces import PersistentStore
from .logging_config import get_logger
from .models import CacheEntry, IdType, UserKey, UserRecord


logger = get_logger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 7200
DEFAULT_KEY_PREFIX = "directory_sync_user_"


class TwoTierUserCache:
    """Caches the last known record per (identifier, identifier-type).

    The memory tier always accepts writes. The persistent tier is an
    optimization: every error it raises is logged and swallowed, and an
    entry whose latest value has not reached it stays dirty until a later
    ``persist_dirty_data`` succeeds.
    """

    def __init__(self, store: PersistentStore,
                 ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
                 key_prefix: str = DEFAULT_KEY_PREFIX,
                 clock: Optional[Callable[[], float]] = None):
        """Initialize the cache.

        Args:
            store: Persistent key/value tier
            ttl_seconds: Expiry passed to the persistent tier on every write
            key_prefix: Prefix for persistent-tier keys
            clock: Wall-clock source returning epoch seconds
        """
        self._store = store
        self._ttl = ttl_seconds
        self._prefix = key_prefix
        self._clock = clock or time.time
        self._entries: Dict[UserKey, CacheEntry] = {}
        self._write_seq = 0
        self._lock = threading.RLock()

    def get(self, user_id: str, id_type: IdType) -> Optional[UserRecord]:
        """Return the cached record, reading through to the persistent tier on a miss."""
        key = self._key(user_id, id_type)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                logger.debug("User record served from memory cache",
                             extra={'user_id': user_id, 'user_id_type': key.id_type.value})
                return copy.deepcopy(entry.value)

        store_key = self.get_store_key(user_id, key.id_type)
        try:
            stored = self._store.get(store_key)
        except Exception as e:
            self._log_store_error("get", store_key, e, key)
            return None

        if not isinstance(stored, dict):
            return None

        record = copy.deepcopy(stored)
        refreshed = self._refresh_last_access(record)

        with self._lock:
            # A concurrent set() wins over the value read from the store.
            entry = self._entries.get(key)
            if entry is None:
                # A refreshed last_access has not reached the store yet.
                entry = CacheEntry(key=key, value=record, dirty=refreshed,
                                   version=self._next_version())
                self._entries[key] = entry
            value = copy.deepcopy(entry.value)

        logger.debug("User record loaded from persistent cache",
                     extra={'user_id': user_id, 'user_id_type': key.id_type.value})
        return value

    def set(self, user_id: str, id_type: IdType, record: UserRecord) -> None:
        """Write to memory, then try the persistent tier."""
        key = self._key(user_id, id_type)
        value = copy.deepcopy(record)

        with self._lock:
            version = self._next_version()
            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = CacheEntry(key=key, value=value, dirty=True, version=version)
            else:
                entry.value = value
                entry.dirty = True
                entry.version = version

        self._persist(key, value, version)

    def delete(self, user_id: str, id_type: IdType) -> None:
        """Drop the entry from memory unconditionally, then from the persistent tier."""
        key = self._key(user_id, id_type)

        with self._lock:
            self._entries.pop(key, None)

        store_key = self.get_store_key(user_id, key.id_type)
        try:
            self._store.delete(store_key)
        except Exception as e:
            self._log_store_error("delete", store_key, e, key)

    def get_dirty_data(self) -> Dict[UserKey, UserRecord]:
        """Snapshot of every in-memory entry not yet persisted."""
        with self._lock:
            return {
                key: copy.deepcopy(entry.value)
                for key, entry in self._entries.items()
                if entry.dirty
            }

    def persist_dirty_data(self) -> int:
        """Try to persist every dirty entry. Returns how many succeeded."""
        with self._lock:
            pending = [
                (key, copy.deepcopy(entry.value), entry.version)
                for key, entry in self._entries.items()
                if entry.dirty
            ]

        persisted = sum(1 for key, value, version in pending if self._persist(key, value, version))

        if persisted:
            logger.info(f"Persisted {persisted}/{len(pending)} dirty cache entries",
                        extra={'persisted_count': persisted, 'pending_count': len(pending)})
        elif pending:
            logger.warning(f"No dirty cache entries could be persisted ({len(pending)} pending)",
                           extra={'pending_count': len(pending)})
        return persisted

    def clean_memory_cache(self, max_age: int = 3600) -> int:
        """Evict clean entries whose last access/sync is older than ``max_age`` seconds.

        Dirty entries are never evicted. Returns the number of evicted entries.
        """
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items()
                if not entry.dirty and now - self._last_touched(entry.value) > max_age
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info(f"Cleaned {len(expired)} entries from memory cache",
                        extra={'cleaned_count': len(expired), 'max_age': max_age})
        return len(expired)

    def is_dirty(self, user_id: str, id_type: IdType) -> bool:
        key = self._key(user_id, id_type)
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.dirty

    def memory_size(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_store_key(self, user_id: str, id_type: IdType) -> str:
        """Persistent-tier key. Identifier-types never contain ':' so keys cannot collide."""
        return f"{self._prefix}{IdType.parse(id_type).value}:{user_id}"

    def _persist(self, key: UserKey, value: UserRecord, version: int) -> bool:
        store_key = self.get_store_key(key.user_id, key.id_type)
        try:
            self._store.set(store_key, value, self._ttl)
        except Exception as e:
            self._log_store_error("set", store_key, e, key)
            return False

        with self._lock:
            entry = self._entries.get(key)
            # Only the write that carried the latest value may clear the flag.
            if entry is not None and entry.version == version:
                entry.dirty = False
        return True

    def _next_version(self) -> int:
        self._write_seq += 1
        return self._write_seq

    def _refresh_last_access(self, record: UserRecord) -> bool:
        metadata = record.get('metadata')
        if isinstance(metadata, dict) and 'last_access' in metadata:
            metadata['last_access'] = self._clock()
            return True
        return False

    @staticmethod
    def _last_touched(record: UserRecord) -> float:
        metadata = record.get('metadata')
        if not isinstance(metadata, dict):
            return 0
        value = metadata.get('last_access')
        if value is None:
            value = metadata.get('last_sync', 0)
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0

    @staticmethod
    def _key(user_id: str, id_type: IdType) -> UserKey:
        return UserKey(user_id, IdType.parse(id_type))

    @staticmethod
    def _log_store_error(operation: str, store_key: str, error: Exception, key: UserKey) -> None:
        wrapped = CacheStoreError(operation, store_key, error)
        logger.error(wrapped.message,
                     extra={'user_id': key.user_id, 'user_id_type': key.id_type.value,
                            'error': str(error), 'error_type': type(error).__name__})
