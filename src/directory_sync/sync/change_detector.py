"""Field-level change detection between two user records."""

from typing import Any, Iterator, Mapping, Optional, Tuple

from .models import ChangeSet, ChangeSummary, FieldChange


# Fields whose change is organizationally significant.
KEY_FIELDS: Tuple[str, ...] = (
    'name',
    'en_name',
    'email',
    'mobile',
    'status',
    'department_ids',
    'leader_user_id',
    'is_tenant_manager',
)

_MISSING = object()


def values_differ(old: Any, new: Any) -> bool:
    """Strict comparison: values of different types always differ.

    ``1``, ``1.0`` and ``True`` are three different values here, and the
    rule applies recursively inside lists and mappings.
    """
    if type(old) is not type(new):
        return True

    if isinstance(old, Mapping):
        if old.keys() != new.keys():
            return True
        return any(values_differ(old[key], new[key]) for key in old)

    if isinstance(old, (list, tuple)):
        if len(old) != len(new):
            return True
        return any(values_differ(a, b) for a, b in zip(old, new))

    return old != new


class UserChangeDetector:
    """Detects changes and differences between two versions of a user record."""

    def __init__(self, key_fields: Tuple[str, ...] = KEY_FIELDS):
        self.key_fields = key_fields

    def detect_changes(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> ChangeSet:
        """Return every field whose value differs, in old-then-new key order.

        A field present on one side only is a change even when the other
        side holds None; the missing side is reported as None.
        """
        changes: ChangeSet = {}
        for field, old_value, new_value in self._iter_union(old, new):
            if self._field_changed(old_value, new_value):
                changes[field] = FieldChange(
                    old=None if old_value is _MISSING else old_value,
                    new=None if new_value is _MISSING else new_value,
                )
        return changes

    def has_changes(self, old: Optional[Mapping[str, Any]], new: Mapping[str, Any]) -> bool:
        """Return True if any key field changed. No previous record is not a change."""
        if old is None:
            return False

        return any(
            self._field_changed(old.get(field, _MISSING), new.get(field, _MISSING))
            for field in self.key_fields
        )

    def should_dispatch_update_event(self, old: Optional[Mapping[str, Any]],
                                     new: Mapping[str, Any]) -> bool:
        """Return True if any field at all changed against a previous record."""
        if old is None:
            return False
        return bool(self.detect_changes(old, new))

    def get_change_summary(self, old: Optional[Mapping[str, Any]],
                           new: Mapping[str, Any]) -> ChangeSummary:
        if old is None:
            return ChangeSummary()

        changed_fields = list(self.detect_changes(old, new))
        critical_changes = [field for field in changed_fields if field in self.key_fields]

        return ChangeSummary(
            has_changes=bool(changed_fields),
            changed_fields=changed_fields,
            critical_changes=critical_changes,
        )

    @staticmethod
    def _iter_union(old: Mapping[str, Any],
                    new: Mapping[str, Any]) -> Iterator[Tuple[str, Any, Any]]:
        for field in old:
            yield field, old[field], new.get(field, _MISSING)
        for field in new:
            if field not in old:
                yield field, _MISSING, new[field]

    @staticmethod
    def _field_changed(old_value: Any, new_value: Any) -> bool:
        if old_value is _MISSING or new_value is _MISSING:
            return old_value is not new_value
        return values_differ(old_value, new_value)
