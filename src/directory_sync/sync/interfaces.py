"""Base interfaces for the collaborators of the sync core."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from .models import (
    BatchSyncCompleted, DepartmentMembersPage, IdType, UserDeleted,
    UserRecord, UserUpdated,
)


SyncEventPayload = Union[UserUpdated, UserDeleted, BatchSyncCompleted]


class RemoteUserSource(ABC):
    """Interface for the remote identity directory."""

    @abstractmethod
    def fetch_one(self, user_id: str, id_type: IdType) -> UserRecord:
        """Fetch one user record. Raises on failure."""
        pass

    @abstractmethod
    def fetch_many(self, user_ids: List[str], id_type: IdType) -> Dict[str, UserRecord]:
        """Fetch several users in one call.

        Raises on transport failure. Identifiers missing from the returned
        mapping are unknown upstream.
        """
        pass

    @abstractmethod
    def fetch_department_members(self, department_id: str,
                                 page_token: Optional[str] = None) -> DepartmentMembersPage:
        """Fetch one page of a department's members."""
        pass

    @abstractmethod
    def fetch_user_departments(self, user_id: str, id_type: IdType) -> List[Dict[str, Any]]:
        """Resolve the departments a user belongs to."""
        pass


class PersistentStore(ABC):
    """Interface for the persistent key/value tier. Any operation may raise."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None on a miss."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds``."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""
        pass


class EventSink(ABC):
    """Interface for receiving sync events. Fire-and-forget."""

    @abstractmethod
    def emit(self, event: SyncEventPayload) -> None:
        """Deliver one event."""
        pass
