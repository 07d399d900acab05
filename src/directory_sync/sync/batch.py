"""Batch orchestration: chunking, staleness filtering and per-record isolation."""

import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from .collector import SyncResultCollector
from .error_handler import SyncErrorHandler
from .exceptions import RemoteFetchError
from .interfaces import RemoteUserSource
from .logging_config import get_logger, log_batch_metrics
from .models import BatchResult, IdType, UserRecord
from .pipeline import RecordSyncPipeline
from .strategy import SyncStrategy


logger = get_logger(__name__)

RecordOutcome = Tuple[str, Optional[UserRecord]]


class BatchSyncProcessor:
    """Runs a batch sync chunk by chunk.

    Per chunk: one staleness filter, one remote multi-get, then each
    returned record on its own. A failing multi-get fails the chunk's
    fetched identifiers; a failing record fails only itself.
    """

    def __init__(self,
                 remote: RemoteUserSource,
                 strategy: SyncStrategy,
                 pipeline: RecordSyncPipeline,
                 collector: SyncResultCollector,
                 error_handler: SyncErrorHandler,
                 max_workers: int = 1):
        """Initialize the batch processor.

        Args:
            remote: Remote directory client
            strategy: Staleness strategy deciding who is due
            pipeline: Per-record processing sequence
            collector: Result bookkeeping and chunking
            error_handler: Failure logging and missing-user reconciliation
            max_workers: Threads used for the per-record step of a chunk
        """
        self._remote = remote
        self._strategy = strategy
        self._pipeline = pipeline
        self._collector = collector
        self._error_handler = error_handler
        self._max_workers = max_workers

    def process_batch_sync(self, user_ids: Sequence[str], id_type: IdType,
                           force: bool = False) -> BatchResult:
        """Sync ``user_ids`` and return their three-way partition.

        ``user_ids`` must already be validated and free of duplicates.
        """
        result = self._collector.create_empty_result()
        if not user_ids:
            return result

        self._collector.log_batch_sync_start(user_ids, id_type, force)
        start_time = time.time()

        for chunk in self._collector.create_batches(user_ids):
            self._collector.merge(result, self._process_chunk(chunk, id_type, force))

        log_batch_metrics(
            logger, len(user_ids), (time.time() - start_time) * 1000,
            len(result.success), len(result.failed), len(result.skipped),
            user_id_type=id_type.value
        )
        return result

    def _process_chunk(self, chunk: List[str], id_type: IdType, force: bool) -> BatchResult:
        partial = self._collector.create_empty_result()

        sync_filter = self._strategy.filter_users_to_sync(chunk, id_type, force)
        self._collector.add_skipped(partial, sync_filter.skipped)

        to_sync = sync_filter.to_sync
        if not to_sync:
            return partial

        try:
            returned = self._remote.fetch_many(list(to_sync), id_type)
            if not isinstance(returned, Mapping):
                raise RemoteFetchError(
                    "fetch_many", TypeError(f"expected a mapping, got {type(returned).__name__}")
                )
        except Exception as e:
            failed = self._error_handler.handle_batch_fetch_error(to_sync, id_type, e)
            return self._collector.add_batch_failures(partial, failed)

        requested = set(to_sync)
        unexpected = [user_id for user_id in returned if user_id not in requested]
        if unexpected:
            logger.warning(f"Directory returned {len(unexpected)} users that were not requested",
                           extra={'user_id_type': id_type.value, 'unexpected_ids': unexpected})

        items = [(user_id, record) for user_id, record in returned.items() if user_id in requested]
        for user_id, processed in self._process_records(items, id_type):
            if processed is None:
                self._collector.add_failure(partial, user_id)
            else:
                self._collector.add_success(partial, user_id, processed)

        missing = self._error_handler.handle_missing_users(to_sync, returned, id_type)
        self._collector.add_batch_failures(partial, missing)

        # Failed users keep their old timestamp and stay due for the next call.
        self._strategy.batch_record_sync_time(list(partial.success), id_type)
        return partial

    def _process_records(self, items: List[Tuple[str, UserRecord]],
                         id_type: IdType) -> List[RecordOutcome]:
        if self._max_workers <= 1 or len(items) <= 1:
            return [self._process_record(user_id, id_type, record) for user_id, record in items]

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            return list(executor.map(
                lambda item: self._process_record(item[0], id_type, item[1]), items
            ))

    def _process_record(self, user_id: str, id_type: IdType, record: UserRecord) -> RecordOutcome:
        try:
            return user_id, self._pipeline.apply(user_id, id_type, record)
        except Exception as e:
            self._error_handler.handle_single_user_error(user_id, id_type, e)
            return user_id, None
