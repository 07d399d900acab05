"""Per-record processing: validation, derived fields and cache writes."""

import copy
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .cache import TwoTierUserCache
from .interfaces import RemoteUserSource
from .logging_config import get_logger
from .models import IdType, UserPermissions, UserProfile, UserRecord


logger = get_logger(__name__)

# Fields written by the sync core itself; they never count as content changes.
BOOKKEEPING_FIELDS: Tuple[str, ...] = ('metadata',)


def strip_bookkeeping(record: Optional[Mapping[str, Any]]) -> Optional[UserRecord]:
    """Return ``record`` without the sync core's own bookkeeping fields."""
    if record is None:
        return None
    return {key: value for key, value in record.items() if key not in BOOKKEEPING_FIELDS}


class UserDataProcessor:
    """Turns a fetched directory record into the record we cache."""

    def __init__(self, remote: RemoteUserSource, cache: TwoTierUserCache,
                 clock: Optional[Callable[[], float]] = None):
        self._remote = remote
        self._cache = cache
        self._clock = clock or time.time

    def process_user_data(self, user_id: str, id_type: IdType, record: UserRecord,
                          previous: Optional[Mapping[str, Any]] = None) -> UserRecord:
        """Validate, enrich and cache one record.

        The fetched values are cached as they came; validation only checks
        their shape. If resolving departments fails, the departments of
        ``previous`` are kept.

        Raises:
            pydantic.ValidationError: If a known field has the wrong shape
        """
        UserProfile.model_validate(record)
        processed = copy.deepcopy(dict(record))

        self._attach_related_data(user_id, id_type, processed, previous)

        now = self._clock()
        metadata = dict(processed.get('metadata') or {})
        metadata['last_sync'] = now
        metadata['last_access'] = now
        processed['metadata'] = metadata

        self._cache.set(user_id, id_type, processed)
        return processed

    def get_cached_user_data(self, user_id: str, id_type: IdType) -> Optional[UserRecord]:
        return self._cache.get(user_id, id_type)

    def handle_deleted_user(self, user_id: str, id_type: IdType) -> None:
        """Forget a user the directory no longer returns."""
        logger.warning(f"User {user_id} not returned by directory, treating as deleted",
                       extra={'user_id': user_id, 'user_id_type': IdType.parse(id_type).value})
        self._cache.delete(user_id, id_type)

    def _attach_related_data(self, user_id: str, id_type: IdType, processed: UserRecord,
                             previous: Optional[Mapping[str, Any]]) -> None:
        try:
            departments = self._resolve_departments(user_id, id_type, processed)
            if departments is not None:
                processed['departments'] = departments
        except Exception as e:
            kept = previous is not None and 'departments' in previous
            if kept:
                processed['departments'] = copy.deepcopy(previous['departments'])
            logger.error(f"Failed to resolve departments for user {user_id}: {e}"
                         f"{', keeping previous departments' if kept else ''}",
                         extra={'user_id': user_id, 'user_id_type': IdType.parse(id_type).value,
                                'error': str(e), 'error_type': type(e).__name__})

        permissions = self.extract_user_permissions(processed)
        if permissions is not None:
            processed['permissions'] = permissions.model_dump()

    def _resolve_departments(self, user_id: str, id_type: IdType,
                             processed: UserRecord) -> Optional[List[Dict[str, Any]]]:
        if not processed.get('department_ids'):
            return None
        return self._remote.fetch_user_departments(user_id, IdType.parse(id_type))

    @staticmethod
    def extract_user_permissions(record: Mapping[str, Any]) -> Optional[UserPermissions]:
        """Derive permission flags from the tenant-manager flag and custom attributes.

        Returns None when the record carries neither.
        """
        if record.get('is_tenant_manager') is None and record.get('custom_attrs') is None:
            return None

        permissions: List[str] = []
        roles: List[str] = []

        if record.get('is_tenant_manager') is True:
            roles.append('tenant_manager')
            permissions.append('*')

        custom_attrs = record.get('custom_attrs')
        if isinstance(custom_attrs, list):
            for attr in custom_attrs:
                if not isinstance(attr, Mapping):
                    continue
                value = attr.get('value')
                if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                    continue
                if attr.get('key') == 'permissions':
                    permissions.extend(value)
                elif attr.get('key') == 'roles':
                    roles.extend(value)

        return UserPermissions(
            is_tenant_manager=record.get('is_tenant_manager') is True,
            permissions=list(dict.fromkeys(permissions)),
            roles=list(dict.fromkeys(roles)),
        )
