"""User directory sync service: single-record orchestration and component wiring."""

from typing import Any, Callable, Iterable, List, Optional

from .batch import BatchSyncProcessor
from .cache import TwoTierUserCache
from .change_detector import UserChangeDetector
from .collector import SyncResultCollector
from .config import SyncConfig
from .dispatcher import UserEventDispatcher
from .error_handler import SyncErrorHandler
from .exceptions import InvalidUserIdError
from .interfaces import EventSink, RemoteUserSource
from .logging_config import get_logger, PerformanceTimer, set_sync_log_level
from .models import BatchResult, IdType, SyncStatistics, UserRecord
from .pipeline import RecordSyncPipeline
from .processor import UserDataProcessor
from .strategy import SyncStrategy


logger = get_logger(__name__)


class UserSyncService:
    """Keeps the local user cache in step with the remote directory."""

    def __init__(self,
                 remote: RemoteUserSource,
                 cache: TwoTierUserCache,
                 sink: EventSink,
                 config: Optional[SyncConfig] = None,
                 strategy: Optional[SyncStrategy] = None,
                 change_detector: Optional[UserChangeDetector] = None,
                 clock: Optional[Callable[[], float]] = None):
        """Initialize the sync service.

        Args:
            remote: Remote directory client
            cache: Two-tier user cache
            sink: Receiver of user and batch events
            config: Sync settings; defaults are used when omitted
            strategy: Staleness strategy; built from ``config`` when omitted
            change_detector: Change detector; the default key fields when omitted
            clock: Wall-clock source shared by the strategy and processor
        """
        self._config = config or SyncConfig()
        self._config.validate()
        set_sync_log_level(self._config.log_level)

        self._remote = remote
        self._cache = cache
        self._strategy = strategy or SyncStrategy(self._config.sync_interval_seconds, clock=clock)
        self._change_detector = change_detector or UserChangeDetector()
        self._dispatcher = UserEventDispatcher(sink, self._change_detector,
                                               log_events=self._config.log_sync_events)
        self._processor = UserDataProcessor(remote, cache, clock=clock)
        self._pipeline = RecordSyncPipeline(self._processor, self._dispatcher, self._change_detector)
        self._collector = SyncResultCollector(self._config.batch_chunk_size)
        self._error_handler = SyncErrorHandler(self._processor, self._dispatcher)
        self._batch_processor = BatchSyncProcessor(
            remote=remote,
            strategy=self._strategy,
            pipeline=self._pipeline,
            collector=self._collector,
            error_handler=self._error_handler,
            max_workers=self._config.max_workers,
        )

    @property
    def strategy(self) -> SyncStrategy:
        return self._strategy

    @property
    def cache(self) -> TwoTierUserCache:
        return self._cache

    def sync_user(self, user_id: str, id_type: Any = IdType.OPEN_ID,
                  force: bool = False) -> UserRecord:
        """Sync one user and return the processed record.

        A fresh user is served from the cache; if the cache has nothing,
        the user is fetched anyway.

        Args:
            user_id: Identifier of the user
            id_type: Identifier-type of ``user_id``
            force: Ignore the staleness interval

        Returns:
            The processed record

        Raises:
            InvalidIdTypeError: If ``id_type`` is not supported
            InvalidUserIdError: If ``user_id`` is empty or not a string
            UserSyncError: If fetching or processing failed
        """
        id_type = IdType.parse(id_type)
        self._validate_user_id(user_id)

        if not self._strategy.needs_sync(user_id, id_type, force):
            self._error_handler.log_sync_skipped(user_id, id_type)
            cached = self._processor.get_cached_user_data(user_id, id_type)
            if cached is not None:
                return cached

        self._error_handler.log_sync_start(user_id, id_type, force)

        with PerformanceTimer(logger, "sync_user", user_id=user_id, user_id_type=id_type.value):
            try:
                record = self._remote.fetch_one(user_id, id_type)
                processed = self._pipeline.apply(user_id, id_type, record)
            except Exception as e:
                self._error_handler.handle_single_user_error(user_id, id_type, e)
                raise self._error_handler.wrap_exception(e, user_id, id_type) from e

        self._strategy.record_sync_time(user_id, id_type)
        self._error_handler.log_sync_success(user_id, id_type, processed)
        return processed

    def batch_sync_users(self, user_ids: Iterable[str], id_type: Any = IdType.OPEN_ID,
                         force: bool = False) -> BatchResult:
        """Sync many users and report which succeeded, failed or were skipped.

        Only invalid arguments raise; every per-user problem is reported in
        the result. Duplicate identifiers are synced once.

        Raises:
            InvalidIdTypeError: If ``id_type`` is not supported
            InvalidUserIdError: If any identifier is empty or not a string
        """
        id_type = IdType.parse(id_type)
        user_ids = list(user_ids)
        for user_id in user_ids:
            self._validate_user_id(user_id)
        unique_ids = list(dict.fromkeys(user_ids))

        if not unique_ids:
            return self._collector.create_empty_result()

        result = self._batch_processor.process_batch_sync(unique_ids, id_type, force)
        self._dispatcher.dispatch_batch_sync_completed(unique_ids, id_type, result)
        return result

    def sync_department_users(self, department_id: str, force: bool = False) -> BatchResult:
        """Sync every member of a department. Enumeration failures yield an empty result."""
        logger.info(f"Syncing users of department {department_id}",
                    extra={'department_id': department_id, 'force': force})
        try:
            user_ids = self._collect_department_user_ids(department_id)
        except Exception as e:
            self._error_handler.handle_department_sync_error(department_id, e)
            return self._collector.create_empty_result()

        return self.batch_sync_users(user_ids, IdType.USER_ID, force)

    def clear_sync_history(self) -> None:
        self._strategy.clear_sync_history()
        logger.info("Sync history cleared")

    def persist_dirty_data(self) -> int:
        return self._cache.persist_dirty_data()

    def clean_memory_cache(self, max_age: Optional[int] = None) -> int:
        if max_age is None:
            max_age = self._config.memory_cache_max_age_seconds
        return self._cache.clean_memory_cache(max_age)

    def get_result_stats(self, result: BatchResult) -> SyncStatistics:
        return self._collector.get_result_stats(result)

    def _collect_department_user_ids(self, department_id: str) -> List[str]:
        user_ids: List[str] = []
        page_token: Optional[str] = None
        seen_tokens = set()

        while True:
            page = self._remote.fetch_department_members(department_id, page_token)
            user_ids.extend(
                user_id for user_id in map(self._extract_member_id, page.items)
                if user_id is not None
            )

            if not page.has_more:
                break
            if not page.next_page_token or page.next_page_token in seen_tokens:
                logger.warning(f"Department {department_id} listing reports more pages "
                               "without a new page token, stopping",
                               extra={'department_id': department_id})
                break
            seen_tokens.add(page.next_page_token)
            page_token = page.next_page_token

        return user_ids

    @staticmethod
    def _extract_member_id(item: Any) -> Optional[str]:
        if not isinstance(item, dict):
            return None
        user = item.get('user')
        user_id = user.get('user_id') if isinstance(user, dict) else item.get('user_id')
        if isinstance(user_id, bool) or not isinstance(user_id, (str, int, float)):
            return None
        user_id = str(user_id)
        return user_id or None

    @staticmethod
    def _validate_user_id(user_id: Any) -> None:
        if not isinstance(user_id, str) or not user_id:
            raise InvalidUserIdError(user_id)
