"""The per-record sync sequence shared by the single and batch paths."""

from .change_detector import UserChangeDetector
from .dispatcher import UserEventDispatcher
from .models import IdType, UserRecord
from .processor import UserDataProcessor, strip_bookkeeping


class RecordSyncPipeline:
    """Applies one freshly fetched record: diff base, processing, cache write, event."""

    def __init__(self, processor: UserDataProcessor, dispatcher: UserEventDispatcher,
                 change_detector: UserChangeDetector):
        self._processor = processor
        self._dispatcher = dispatcher
        self._change_detector = change_detector

    def apply(self, user_id: str, id_type: IdType, record: UserRecord) -> UserRecord:
        """Process ``record`` and emit an update event if its content changed.

        The previous value is read strictly before the cache is overwritten.
        Bookkeeping metadata is left out of the comparison so that the sync
        timestamp alone never produces an event. Derived fields that could
        not be refreshed keep their previous value.

        Raises:
            Exception: Whatever processing raised; nothing is cached then
        """
        old_record = self._processor.get_cached_user_data(user_id, id_type)
        processed = self._processor.process_user_data(user_id, id_type, record,
                                                      previous=old_record)

        old_content = strip_bookkeeping(old_record)
        new_content = strip_bookkeeping(processed)
        if self._change_detector.should_dispatch_update_event(old_content, new_content):
            changes = self._change_detector.detect_changes(old_content, new_content)
            self._dispatcher.dispatch_user_updated(user_id, id_type, old_record, processed,
                                                   changes=changes)
        return processed
