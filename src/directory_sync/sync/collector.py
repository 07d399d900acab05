"""Aggregation and bookkeeping of batch sync results."""

from typing import Iterable, List, Sequence

from .logging_config import get_logger
from .models import BatchResult, IdType, SyncStatistics, UserRecord


logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 100


class SyncResultCollector:
    """Builds and merges BatchResults and splits identifier lists into chunks."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.chunk_size = chunk_size

    def create_empty_result(self) -> BatchResult:
        return BatchResult()

    def add_success(self, result: BatchResult, user_id: str, record: UserRecord) -> BatchResult:
        result.success[user_id] = record
        return result

    def add_failure(self, result: BatchResult, user_id: str) -> BatchResult:
        result.failed.append(user_id)
        return result

    def add_batch_failures(self, result: BatchResult, user_ids: Iterable[str]) -> BatchResult:
        result.failed.extend(user_ids)
        return result

    def add_skipped(self, result: BatchResult, user_ids: Iterable[str]) -> BatchResult:
        result.skipped.extend(user_ids)
        return result

    def merge(self, result: BatchResult, partial: BatchResult) -> BatchResult:
        """Fold ``partial`` into ``result`` and return ``result``."""
        result.success.update(partial.success)
        result.failed.extend(partial.failed)
        result.skipped.extend(partial.skipped)
        return result

    def create_batches(self, user_ids: Sequence[str]) -> List[List[str]]:
        """Split ``user_ids`` into consecutive chunks of at most ``chunk_size``."""
        return [
            list(user_ids[start:start + self.chunk_size])
            for start in range(0, len(user_ids), self.chunk_size)
        ]

    def get_result_stats(self, result: BatchResult) -> SyncStatistics:
        return SyncStatistics(
            success_count=len(result.success),
            failed_count=len(result.failed),
            skipped_count=len(result.skipped),
        )

    def log_batch_sync_start(self, user_ids: Sequence[str], id_type: IdType, force: bool) -> None:
        logger.info(f"Starting batch sync of {len(user_ids)} users",
                    extra={'user_id_type': id_type.value, 'user_count': len(user_ids),
                           'force': force})
