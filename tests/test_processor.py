"""Tests for per-record data processing."""

import pytest
from pydantic import ValidationError

from directory_sync.sync.cache import TwoTierUserCache
from directory_sync.sync.models import IdType
from directory_sync.sync.processor import UserDataProcessor, strip_bookkeeping

from mocks import make_record


@pytest.fixture
def processor(remote, cache, clock):
    return UserDataProcessor(remote, cache, clock=clock)


class TestProcessUserData:
    """Tests for validation, enrichment and caching of one record."""

    def test_stamps_metadata_and_caches(self, processor, cache, clock):
        processed = processor.process_user_data("u1", IdType.USER_ID, make_record("u1"))

        assert processed['metadata'] == {'last_sync': clock.now, 'last_access': clock.now}
        assert cache.get("u1", IdType.USER_ID) == processed

    def test_keeps_unknown_fields(self, processor):
        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", avatar={'avatar_72': 'https://img/72'})
        )
        assert processed['avatar'] == {'avatar_72': 'https://img/72'}

    def test_does_not_add_unset_fields(self, processor):
        processed = processor.process_user_data("u1", IdType.USER_ID, {'user_id': 'u1'})
        assert set(processed) == {'user_id', 'metadata'}

    def test_keeps_existing_metadata(self, processor, clock):
        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", metadata={'source': 'hr'})
        )
        assert processed['metadata'] == {
            'source': 'hr', 'last_sync': clock.now, 'last_access': clock.now
        }

    def test_invalid_known_field_raises_and_caches_nothing(self, processor, cache):
        with pytest.raises(ValidationError):
            processor.process_user_data(
                "u1", IdType.USER_ID, make_record("u1", department_ids="not-a-list")
            )
        assert cache.get("u1", IdType.USER_ID) is None

    def test_resolves_departments(self, processor, remote):
        remote.departments["u1"] = [{'department_id': 'd1', 'name': 'Genetics'}]

        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", department_ids=['d1'])
        )

        assert processed['departments'] == [{'department_id': 'd1', 'name': 'Genetics'}]

    def test_department_lookup_failure_is_not_fatal(self, processor, cache):
        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", department_ids=['d1'])
        )

        assert 'departments' not in processed
        assert processed['department_ids'] == ['d1']
        assert cache.get("u1", IdType.USER_ID) == processed

    def test_department_lookup_failure_keeps_previous_departments(self, processor):
        previous = make_record("u1", department_ids=['d1'],
                               departments=[{'department_id': 'd1', 'name': 'Genetics'}])

        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", department_ids=['d1']), previous=previous
        )

        assert processed['departments'] == [{'department_id': 'd1', 'name': 'Genetics'}]
        assert processed['departments'] is not previous['departments']

    def test_numeric_fields_cached_as_sent(self, processor, cache, remote):
        remote.departments["u1"] = [{'department_id': 1}]

        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", mobile=13800138000, department_ids=[1, 2])
        )

        assert processed['mobile'] == 13800138000
        assert processed['department_ids'] == [1, 2]
        assert cache.get("u1", IdType.USER_ID)['mobile'] == 13800138000

    def test_string_flag_is_not_coerced(self, processor):
        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", is_tenant_manager="false")
        )

        assert processed['is_tenant_manager'] == "false"
        assert processed['permissions']['is_tenant_manager'] is False


class TestExtractUserPermissions:
    """Tests for permission derivation."""

    def test_none_without_inputs(self):
        assert UserDataProcessor.extract_user_permissions({'name': 'A'}) is None

    def test_tenant_manager(self):
        permissions = UserDataProcessor.extract_user_permissions({'is_tenant_manager': True})

        assert permissions.is_tenant_manager
        assert permissions.roles == ['tenant_manager']
        assert permissions.permissions == ['*']

    def test_custom_attributes(self):
        permissions = UserDataProcessor.extract_user_permissions({
            'is_tenant_manager': False,
            'custom_attrs': [
                {'key': 'permissions', 'value': ['read', 'write', 'read']},
                {'key': 'roles', 'value': ['editor']},
                {'key': 'roles', 'value': 'not-a-list'},
                {'key': 'city', 'value': ['Hannover']},
                'garbage',
            ],
        })

        assert not permissions.is_tenant_manager
        assert permissions.permissions == ['read', 'write']
        assert permissions.roles == ['editor']

    def test_permissions_attached_to_record(self, processor):
        processed = processor.process_user_data(
            "u1", IdType.USER_ID, make_record("u1", is_tenant_manager=True)
        )
        assert processed['permissions'] == {
            'is_tenant_manager': True, 'permissions': ['*'], 'roles': ['tenant_manager']
        }


class TestDeletedUsers:
    """Tests for handle_deleted_user."""

    def test_removes_cached_record(self, processor, cache, store):
        processor.process_user_data("u1", IdType.USER_ID, make_record("u1"))

        processor.handle_deleted_user("u1", IdType.USER_ID)

        assert cache.get("u1", IdType.USER_ID) is None
        assert store.data == {}

    def test_unknown_user_is_harmless(self, processor):
        processor.handle_deleted_user("ghost", IdType.USER_ID)


class TestStripBookkeeping:
    """Tests for strip_bookkeeping."""

    def test_strips_metadata(self):
        assert strip_bookkeeping({'name': 'A', 'metadata': {'last_sync': 1}}) == {'name': 'A'}

    def test_none_passes_through(self):
        assert strip_bookkeeping(None) is None

    def test_input_is_not_modified(self):
        record = {'name': 'A', 'metadata': {}}
        strip_bookkeeping(record)
        assert 'metadata' in record


def test_processor_shares_cache_with_reader(remote, store, clock):
    cache = TwoTierUserCache(store, clock=clock)
    processor = UserDataProcessor(remote, cache, clock=clock)

    processor.process_user_data("u1", IdType.OPEN_ID, make_record("u1"))

    assert processor.get_cached_user_data("u1", IdType.OPEN_ID)['name'] == "User u1"
