"""Data models for user directory synchronization."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import InvalidIdTypeError


UserRecord = Dict[str, Any]

# Directories send identifiers and contact fields as strings or numbers.
Scalar = Union[str, int, float]


class IdType(str, Enum):
    """Namespaces a user identifier can belong to."""
    OPEN_ID = "open_id"
    UNION_ID = "union_id"
    USER_ID = "user_id"
    EMAIL = "email"
    MOBILE = "mobile"

    @classmethod
    def parse(cls, value: Any) -> "IdType":
        """Return the IdType for ``value`` or raise InvalidIdTypeError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except (ValueError, TypeError):
            raise InvalidIdTypeError(value, [member.value for member in cls]) from None


class EventType(Enum):
    """Types of events emitted by the sync core."""
    USER_UPDATED = "user.updated"
    USER_DELETED = "user.deleted"
    BATCH_SYNC_COMPLETED = "user.batch_sync_completed"


class UserKey(NamedTuple):
    """Identity of a cached user: (identifier, identifier-type)."""
    user_id: str
    id_type: IdType


class UserProfile(BaseModel):
    """Shape check for a directory record.

    Validation is strict so nothing is coerced, and the record itself is
    what gets cached; the model only rejects records whose known fields
    have the wrong structure. Unknown fields land in the extra map.
    """
    model_config = ConfigDict(extra="allow", strict=True)

    user_id: Optional[Scalar] = None
    open_id: Optional[Scalar] = None
    union_id: Optional[Scalar] = None
    name: Optional[Scalar] = None
    en_name: Optional[Scalar] = None
    email: Optional[Scalar] = None
    enterprise_email: Optional[Scalar] = None
    mobile: Optional[Scalar] = None
    department_ids: Optional[List[Scalar]] = None
    leader_user_id: Optional[Scalar] = None
    status: Any = None
    is_tenant_manager: Any = None
    custom_attrs: Any = None
    metadata: Optional[Dict[str, Any]] = None


class UserPermissions(BaseModel):
    """Permission flags derived from a profile."""
    is_tenant_manager: bool = False
    permissions: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)


@dataclass
class CacheEntry:
    """In-memory slot of the two-tier cache."""
    key: UserKey
    value: UserRecord
    dirty: bool = True
    version: int = 0


@dataclass
class FieldChange:
    """Old and new value of one changed field."""
    old: Any
    new: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"old": self.old, "new": self.new}


ChangeSet = Dict[str, FieldChange]


@dataclass
class ChangeSummary:
    """Summary of the differences between two records."""
    has_changes: bool = False
    changed_fields: List[str] = field(default_factory=list)
    critical_changes: List[str] = field(default_factory=list)


@dataclass
class SyncFilterResult:
    """Partition of a candidate list by the staleness strategy."""
    to_sync: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass
class BatchResult:
    """Three-way outcome of a batch sync.

    Every requested identifier ends up in exactly one of the three
    categories.
    """
    success: Dict[str, UserRecord] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def all_ids(self) -> List[str]:
        return list(self.success) + list(self.failed) + list(self.skipped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": dict(self.success),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
        }


@dataclass
class SyncStatistics:
    """Summary counts for a BatchResult."""
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0

    @property
    def total(self) -> int:
        return self.success_count + self.failed_count + self.skipped_count

    @property
    def success_rate(self) -> float:
        """Percentage of attempted syncs that succeeded (skips excluded)."""
        attempted = self.success_count + self.failed_count
        if attempted == 0:
            return 0.0
        return round(self.success_count / attempted * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "success_rate": self.success_rate,
        }


@dataclass
class DepartmentMembersPage:
    """One page of a department member listing."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    has_more: bool = False
    next_page_token: Optional[str] = None


@dataclass
class UserUpdated:
    """A synced record differs from its previously cached value."""
    user_id: str
    id_type: IdType
    old_record: UserRecord
    new_record: UserRecord
    changes: ChangeSet = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: EventType = EventType.USER_UPDATED


@dataclass
class UserDeleted:
    """A requested user was not returned by the directory."""
    user_id: str
    id_type: IdType
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: EventType = EventType.USER_DELETED


@dataclass
class BatchSyncCompleted:
    """A batch sync call finished."""
    user_ids: List[str]
    id_type: IdType
    result: BatchResult
    timestamp: datetime = field(default_factory=datetime.now)
    event_type: EventType = EventType.BATCH_SYNC_COMPLETED
