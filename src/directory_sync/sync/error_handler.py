"""Classification, logging and wrapping of sync failures."""

from typing import Any, Iterable, List, Mapping

from ..masking import mask_email, mask_mobile
from .dispatcher import UserEventDispatcher
from .exceptions import UserSyncError
from .logging_config import get_logger
from .models import IdType, UserRecord
from .processor import UserDataProcessor


logger = get_logger(__name__)


class SyncErrorHandler:
    """Logs failures with enough context for a postmortem and reconciles missing users."""

    def __init__(self, processor: UserDataProcessor, dispatcher: UserEventDispatcher):
        self._processor = processor
        self._dispatcher = dispatcher

    def handle_single_user_error(self, user_id: str, id_type: IdType, error: Exception) -> None:
        """Log a failure that affects exactly one user."""
        logger.error(f"Failed to sync user {user_id}: {error}",
                     extra={'user_id': user_id, 'user_id_type': id_type.value,
                            'error': str(error), 'error_type': type(error).__name__})

    def handle_batch_fetch_error(self, user_ids: List[str], id_type: IdType,
                                 error: Exception) -> List[str]:
        """Log a failed multi-get. Every identifier of the call is returned as failed."""
        logger.error(f"Batch fetch of {len(user_ids)} users failed: {error}",
                     extra={'user_id_type': id_type.value, 'user_ids': list(user_ids),
                            'error': str(error), 'error_type': type(error).__name__})
        return list(user_ids)

    def handle_department_sync_error(self, department_id: str, error: Exception) -> None:
        logger.error(f"Failed to sync department {department_id}: {error}",
                     extra={'department_id': department_id,
                            'error': str(error), 'error_type': type(error).__name__})

    def handle_missing_users(self, requested: Iterable[str], returned: Mapping[str, Any],
                             id_type: IdType) -> List[str]:
        """Treat requested users absent from ``returned`` as deleted upstream.

        Each one is invalidated in the cache and announced with a deletion
        event. Returns the missing identifiers in request order.
        """
        missing = [user_id for user_id in requested if user_id not in returned]
        for user_id in missing:
            self._processor.handle_deleted_user(user_id, id_type)
            self._dispatcher.dispatch_user_deleted(user_id, id_type)
        return missing

    def wrap_exception(self, error: Exception, user_id: str, id_type: IdType) -> UserSyncError:
        return UserSyncError(user_id, id_type.value, error)

    def log_sync_start(self, user_id: str, id_type: IdType, force: bool) -> None:
        logger.info(f"Syncing user {user_id}",
                    extra={'user_id': user_id, 'user_id_type': id_type.value, 'force': force})

    def log_sync_skipped(self, user_id: str, id_type: IdType) -> None:
        logger.debug(f"User {user_id} is fresh, serving cached record",
                     extra={'user_id': user_id, 'user_id_type': id_type.value})

    def log_sync_success(self, user_id: str, id_type: IdType, record: UserRecord) -> None:
        contact = []
        if isinstance(record.get('email'), str):
            contact.append(mask_email(record['email']))
        if isinstance(record.get('mobile'), str):
            contact.append(mask_mobile(record['mobile']))
        logger.info(f"User {user_id} synced ({record.get('name') or 'unnamed'}"
                    f"{', ' + ', '.join(contact) if contact else ''})",
                    extra={'user_id': user_id, 'user_id_type': id_type.value})
