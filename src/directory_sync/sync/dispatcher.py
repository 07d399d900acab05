"""Construction and emission of user sync events."""

from typing import List, Optional

from .change_detector import UserChangeDetector
from .exceptions import EventDispatchError
from .interfaces import EventSink, SyncEventPayload
from .logging_config import get_logger, log_sync_event
from .models import (
    BatchResult, BatchSyncCompleted, ChangeSet, IdType, UserDeleted, UserRecord,
    UserUpdated,
)


logger = get_logger(__name__)


class UserEventDispatcher:
    """Builds events and hands them to the sink.

    Delivery is fire-and-forget: a failing sink is logged and the event
    is dropped, never retried here.
    """

    def __init__(self, sink: EventSink, change_detector: UserChangeDetector,
                 log_events: bool = True):
        self._sink = sink
        self._change_detector = change_detector
        self._log_events = log_events

    def dispatch_user_updated(self, user_id: str, id_type: IdType,
                              old_record: UserRecord, new_record: UserRecord,
                              changes: Optional[ChangeSet] = None) -> None:
        if changes is None:
            changes = self._change_detector.detect_changes(old_record, new_record)
        event = UserUpdated(
            user_id=user_id,
            id_type=id_type,
            old_record=old_record,
            new_record=new_record,
            changes=changes,
        )
        if self._emit(event) and self._log_events:
            log_sync_event(logger, event.event_type.value, user_id, id_type.value,
                           f"User {user_id} updated: {', '.join(changes)}")

    def dispatch_user_deleted(self, user_id: str, id_type: IdType) -> None:
        event = UserDeleted(user_id=user_id, id_type=id_type)
        if self._emit(event) and self._log_events:
            log_sync_event(logger, event.event_type.value, user_id, id_type.value,
                           f"User {user_id} deleted upstream")

    def dispatch_batch_sync_completed(self, user_ids: List[str], id_type: IdType,
                                      result: BatchResult) -> None:
        event = BatchSyncCompleted(user_ids=list(user_ids), id_type=id_type, result=result)
        if self._emit(event) and self._log_events:
            logger.info(f"Batch sync completed for {len(user_ids)} users",
                        extra={'event_type': event.event_type.value,
                               'user_id_type': id_type.value,
                               'success_count': len(result.success),
                               'failed_count': len(result.failed),
                               'skipped_count': len(result.skipped)})

    def _emit(self, event: SyncEventPayload) -> bool:
        try:
            self._sink.emit(event)
            return True
        except Exception as e:
            error = EventDispatchError(event.event_type.value, e)
            logger.error(error.message,
                         extra={'event_type': event.event_type.value,
                                'user_id': getattr(event, 'user_id', None),
                                'user_id_type': event.id_type.value,
                                'error': str(e), 'error_type': type(e).__name__})
            return False
