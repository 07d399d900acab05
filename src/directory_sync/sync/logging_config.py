"""Logging configuration for user sync events."""

import logging
import sys
import time
from datetime import datetime
from typing import Optional


class SyncEventFormatter(logging.Formatter):
    """Custom formatter for synchronization events."""

    SYNC_FIELDS = ('user_id', 'user_id_type', 'event_type', 'department_id')

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with sync-specific information."""
        if not hasattr(record, 'timestamp'):
            record.timestamp = datetime.now().isoformat()

        sync_fields = []
        for field in self.SYNC_FIELDS:
            if hasattr(record, field):
                sync_fields.append(f"{field}={getattr(record, field)}")

        base_msg = super().format(record)

        if sync_fields:
            return f"{base_msg} [{', '.join(sync_fields)}]"

        return base_msg


def setup_sync_logging(log_level: str = "INFO") -> logging.Logger:
    """Set up logging for synchronization components.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger for sync operations
    """
    logger = logging.getLogger("directory_sync")

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, log_level.upper()))

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, log_level.upper()))

    formatter = SyncEventFormatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    return logger


def set_sync_log_level(log_level: str) -> None:
    """Apply ``log_level`` to the sync logger and its handlers."""
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger("directory_sync")
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def log_sync_event(logger: logging.Logger, event_type: str, user_id: str,
                   id_type: str, message: str, **kwargs) -> None:
    """Log a synchronization event with structured data.

    Args:
        logger: Logger instance
        event_type: Type of sync event
        user_id: Identifier of the user involved
        id_type: Identifier-type of ``user_id``
        message: Human-readable message
        **kwargs: Additional fields to include in log
    """
    extra = {
        'event_type': event_type,
        'user_id': user_id,
        'user_id_type': id_type,
        'timestamp': datetime.now().isoformat(),
        **kwargs
    }

    logger.info(message, extra=extra)


def log_batch_metrics(logger: logging.Logger, batch_size: int,
                      processing_time_ms: float, success_count: int,
                      failure_count: int, skipped_count: int = 0, **kwargs) -> None:
    """Log metrics for batch operations.

    Args:
        logger: Logger instance
        batch_size: Total number of identifiers in the batch
        processing_time_ms: Time to process the batch
        success_count: Number of successful syncs
        failure_count: Number of failed syncs
        skipped_count: Number of identifiers skipped as still fresh
        **kwargs: Additional batch metrics
    """
    attempted = success_count + failure_count
    success_rate = (success_count / attempted) if attempted > 0 else 0

    extra = {
        'event_type': 'batch_metrics',
        'batch_size': batch_size,
        'processing_time_ms': round(processing_time_ms, 2),
        'success_count': success_count,
        'failure_count': failure_count,
        'skipped_count': skipped_count,
        'success_rate': round(success_rate, 3),
        'timestamp': datetime.now().isoformat(),
        **kwargs
    }

    if failure_count > 0:
        logger.warning(f"Batch sync finished with {failure_count} failures: "
                       f"{success_count}/{batch_size} synced, {skipped_count} skipped", extra=extra)
    else:
        logger.info(f"Batch sync finished: {success_count} synced, {skipped_count} skipped "
                    f"in {processing_time_ms:.2f}ms", extra=extra)


def log_performance_metrics(logger: logging.Logger, operation: str,
                            latency_ms: float, **kwargs) -> None:
    """Log the latency of a sync operation."""
    extra = {
        'event_type': 'performance_metrics',
        'operation': operation,
        'latency_ms': round(latency_ms, 2),
        'timestamp': datetime.now().isoformat(),
        **kwargs
    }

    if latency_ms > 1000:
        logger.warning(f"Slow operation detected: {operation} took {latency_ms:.2f}ms", extra=extra)
    else:
        logger.debug(f"Performance: {operation} took {latency_ms:.2f}ms", extra=extra)


class PerformanceTimer:
    """Context manager for measuring operation performance."""

    def __init__(self, logger: logging.Logger, operation: str, **kwargs):
        self.logger = logger
        self.operation = operation
        self.kwargs = kwargs
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            latency_ms = (time.time() - self.start_time) * 1000

            if exc_type:
                self.kwargs['error'] = str(exc_val)
                self.kwargs['error_type'] = exc_type.__name__

            log_performance_metrics(
                self.logger, self.operation, latency_ms, **self.kwargs
            )


def get_logger(name: str, log_level: str = "INFO") -> logging.Logger:
    """Get a configured logger for sync components.

    Args:
        name: Logger name (usually __name__)
        log_level: Logging level

    Returns:
        Configured logger instance
    """
    setup_sync_logging(log_level)

    return logging.getLogger(name)
