"""Staleness-based sync scheduling."""

import threading
import time
from typing import Callable, Dict, Iterable, Optional

from .models import IdType, SyncFilterResult, UserKey


DEFAULT_SYNC_INTERVAL_SECONDS = 300


class SyncStrategy:
    """Decides whether a user is due for a remote fetch.

    Sync times live in process memory only, so after a restart every
    user is due again.
    """

    def __init__(self, sync_interval_seconds: int = DEFAULT_SYNC_INTERVAL_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        """Initialize the strategy.

        Args:
            sync_interval_seconds: Minimum seconds between two non-forced syncs
            clock: Wall-clock source returning epoch seconds
        """
        self._interval = sync_interval_seconds
        self._clock = clock or time.time
        self._last_sync_time: Dict[UserKey, float] = {}
        self._lock = threading.Lock()

    @property
    def sync_interval_seconds(self) -> int:
        return self._interval

    def needs_sync(self, user_id: str, id_type: IdType, force: bool = False) -> bool:
        """Return True if forced, never synced, or the interval has elapsed."""
        if force:
            return True

        key = self.get_sync_key(user_id, id_type)
        with self._lock:
            last_sync = self._last_sync_time.get(key)

        if last_sync is None:
            return True

        return self._clock() - last_sync >= self._interval

    def record_sync_time(self, user_id: str, id_type: IdType) -> None:
        key = self.get_sync_key(user_id, id_type)
        now = self._clock()
        with self._lock:
            self._last_sync_time[key] = now

    def batch_record_sync_time(self, user_ids: Iterable[str], id_type: IdType) -> None:
        now = self._clock()
        id_type = IdType.parse(id_type)
        with self._lock:
            for user_id in user_ids:
                self._last_sync_time[UserKey(user_id, id_type)] = now

    def filter_users_to_sync(self, user_ids: Iterable[str], id_type: IdType,
                             force: bool = False) -> SyncFilterResult:
        """Split ``user_ids`` into due and fresh, keeping input order in each."""
        result = SyncFilterResult()
        for user_id in user_ids:
            if self.needs_sync(user_id, id_type, force):
                result.to_sync.append(user_id)
            else:
                result.skipped.append(user_id)
        return result

    def clear_sync_history(self) -> None:
        with self._lock:
            self._last_sync_time.clear()

    def tracked_count(self) -> int:
        with self._lock:
            return len(self._last_sync_time)

    @staticmethod
    def get_sync_key(user_id: str, id_type: IdType) -> UserKey:
        return UserKey(user_id, IdType.parse(id_type))
