"""Custom exceptions for user directory synchronization."""

from typing import Optional, Dict, Any, List
from datetime import datetime


class SyncError(Exception):
    """Base exception for synchronization errors."""

    def __init__(self, message: str, error_code: str = "sync_error",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class InvalidIdTypeError(SyncError, ValueError):
    """Raised when an identifier-type outside the supported set is used."""

    def __init__(self, id_type: Any, valid_types: List[str]):
        message = f"Invalid user id type {id_type!r}, expected one of {valid_types}"
        details = {
            "id_type": repr(id_type),
            "valid_types": valid_types
        }
        super().__init__(message, "invalid_id_type", details)


class InvalidUserIdError(SyncError, ValueError):
    """Raised when a user identifier is empty or not a string."""

    def __init__(self, user_id: Any):
        message = f"Invalid user id {user_id!r}: must be a non-empty string"
        details = {"user_id": repr(user_id)}
        super().__init__(message, "invalid_user_id", details)


class UserSyncError(SyncError):
    """Raised when a single-user sync fails."""

    def __init__(self, user_id: str, id_type: str, cause: Exception):
        message = f"User sync failed for {id_type}:{user_id}: {cause}"
        details = {
            "user_id": user_id,
            "user_id_type": id_type,
            "error": str(cause),
            "error_type": type(cause).__name__
        }
        super().__init__(message, "user_sync_failed", details)
        self.user_id = user_id
        self.id_type = id_type
        self.cause = cause


class RemoteFetchError(SyncError):
    """Raised when a call to the remote directory fails."""

    def __init__(self, operation: str, cause: Exception,
                 details: Optional[Dict[str, Any]] = None):
        message = f"Remote {operation} failed: {cause}"
        error_details = {
            "operation": operation,
            "error": str(cause),
            "error_type": type(cause).__name__,
            **(details or {})
        }
        super().__init__(message, "remote_fetch_failed", error_details)


class CacheStoreError(SyncError):
    """Describes a persistent-tier failure. Logged by the cache, never raised out of it."""

    def __init__(self, operation: str, key: str, cause: Exception):
        message = f"Persistent cache {operation} failed for {key}: {cause}"
        details = {
            "operation": operation,
            "key": key,
            "error": str(cause),
            "error_type": type(cause).__name__
        }
        super().__init__(message, "cache_store_error", details)


class EventDispatchError(SyncError):
    """Describes an event sink failure. Logged by the dispatcher, never raised out of it."""

    def __init__(self, event_type: str, cause: Exception):
        message = f"Dispatch of {event_type} failed: {cause}"
        details = {
            "event_type": event_type,
            "error": str(cause),
            "error_type": type(cause).__name__
        }
        super().__init__(message, "event_dispatch_failed", details)
