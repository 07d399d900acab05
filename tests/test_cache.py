"""Tests for the two-tier user cache."""

from hypothesis import given, strategies as st

from directory_sync.sync.cache import TwoTierUserCache
from directory_sync.sync.models import IdType, UserKey

from mocks import FakeClock, MockPersistentStore, make_record


json_values = st.recursive(
    st.one_of(st.none(), st.booleans(), st.integers(), st.text(max_size=10)),
    lambda children: st.one_of(
        st.lists(children, max_size=3),
        st.dictionaries(st.text(max_size=5), children, max_size=3),
    ),
    max_leaves=8,
)
records = st.dictionaries(st.text(min_size=1, max_size=10), json_values, max_size=6)


class TestRoundTrip:
    """Tests for set followed by get."""

    @given(st.text(min_size=1, max_size=20), st.sampled_from(list(IdType)), records, st.booleans())
    def test_set_then_get_returns_equal_record_property(self, user_id, id_type, record, store_fails):
        """The memory tier serves the value whether or not the store accepted it."""
        cache = TwoTierUserCache(MockPersistentStore(should_fail=store_fails), clock=FakeClock())

        cache.set(user_id, id_type, record)

        assert cache.get(user_id, id_type) == record

    def test_returned_record_is_a_copy(self, cache):
        cache.set("u1", IdType.OPEN_ID, {'name': 'A', 'department_ids': ['d1']})

        cached = cache.get("u1", IdType.OPEN_ID)
        cached['department_ids'].append('d2')

        assert cache.get("u1", IdType.OPEN_ID) == {'name': 'A', 'department_ids': ['d1']}

    def test_caller_mutation_after_set_does_not_leak(self, cache):
        record = {'name': 'A'}
        cache.set("u1", IdType.OPEN_ID, record)
        record['name'] = 'B'

        assert cache.get("u1", IdType.OPEN_ID) == {'name': 'A'}

    def test_id_types_do_not_collide(self, cache):
        cache.set("same", IdType.OPEN_ID, {'name': 'open'})
        cache.set("same", IdType.USER_ID, {'name': 'user'})

        assert cache.get("same", IdType.OPEN_ID) == {'name': 'open'}
        assert cache.get("same", IdType.USER_ID) == {'name': 'user'}


class TestPersistentTier:
    """Tests for read-through and write-through to the persistent store."""

    def test_set_writes_through_with_ttl(self, store, clock):
        cache = TwoTierUserCache(store, ttl_seconds=60, key_prefix="test_", clock=clock)

        cache.set("u1", IdType.EMAIL, {'name': 'A'})

        assert store.data == {'test_email:u1': {'name': 'A'}}
        assert store.ttls == {'test_email:u1': 60}
        assert not cache.is_dirty("u1", IdType.EMAIL)

    def test_miss_reads_through_and_populates_memory(self, store, clock):
        store.data[TwoTierUserCache(store).get_store_key("u1", IdType.OPEN_ID)] = {'name': 'A'}
        cache = TwoTierUserCache(store, clock=clock)

        assert cache.get("u1", IdType.OPEN_ID) == {'name': 'A'}
        assert cache.memory_size() == 1

        store.should_fail = True
        assert cache.get("u1", IdType.OPEN_ID) == {'name': 'A'}

    def test_total_miss_returns_none(self, cache):
        assert cache.get("nobody", IdType.OPEN_ID) is None
        assert cache.memory_size() == 0

    def test_store_errors_on_read_degrade_to_miss(self, clock):
        cache = TwoTierUserCache(MockPersistentStore(should_fail=True), clock=clock)
        assert cache.get("u1", IdType.OPEN_ID) is None

    def test_failed_write_leaves_entry_dirty(self, clock):
        store = MockPersistentStore(should_fail=True)
        cache = TwoTierUserCache(store, clock=clock)

        cache.set("u1", IdType.OPEN_ID, {'name': 'A'})

        assert cache.is_dirty("u1", IdType.OPEN_ID)
        assert cache.get_dirty_data() == {UserKey("u1", IdType.OPEN_ID): {'name': 'A'}}

    def test_read_refreshes_last_access_and_marks_dirty(self, store, clock):
        key = TwoTierUserCache(store).get_store_key("u1", IdType.OPEN_ID)
        store.data[key] = {'name': 'A', 'metadata': {'last_sync': 100.0, 'last_access': 100.0}}
        cache = TwoTierUserCache(store, clock=clock)

        record = cache.get("u1", IdType.OPEN_ID)

        assert record['metadata']['last_access'] == clock.now
        assert record['metadata']['last_sync'] == 100.0
        assert cache.is_dirty("u1", IdType.OPEN_ID)

        assert cache.persist_dirty_data() == 1
        assert store.data[key]['metadata']['last_access'] == clock.now

    def test_read_without_last_access_stays_clean(self, store, clock):
        key = TwoTierUserCache(store).get_store_key("u1", IdType.OPEN_ID)
        store.data[key] = {'name': 'A', 'metadata': {'last_sync': 100.0}}
        cache = TwoTierUserCache(store, clock=clock)

        assert cache.get("u1", IdType.OPEN_ID) == {'name': 'A', 'metadata': {'last_sync': 100.0}}
        assert not cache.is_dirty("u1", IdType.OPEN_ID)

    def test_non_dict_store_value_is_a_miss(self, store, cache):
        store.data[cache.get_store_key("u1", IdType.OPEN_ID)] = "garbage"
        assert cache.get("u1", IdType.OPEN_ID) is None


class TestDelete:
    """Tests for delete."""

    def test_delete_removes_both_tiers(self, store, cache):
        cache.set("u1", IdType.OPEN_ID, {'name': 'A'})

        cache.delete("u1", IdType.OPEN_ID)

        assert cache.get("u1", IdType.OPEN_ID) is None
        assert store.data == {}

    def test_delete_with_failing_store_still_drops_memory(self, clock):
        store = MockPersistentStore(should_fail=True)
        cache = TwoTierUserCache(store, clock=clock)
        cache.set("u1", IdType.OPEN_ID, {'name': 'A'})

        cache.delete("u1", IdType.OPEN_ID)

        assert cache.memory_size() == 0
        assert cache.get_dirty_data() == {}
        assert store.delete_calls == [cache.get_store_key("u1", IdType.OPEN_ID)]


class TestDirtyTracking:
    """Tests for persist_dirty_data and get_dirty_data."""

    def test_persist_dirty_data_after_recovery(self, clock):
        store = MockPersistentStore(should_fail=True)
        cache = TwoTierUserCache(store, clock=clock)
        cache.set("a", IdType.OPEN_ID, {'name': 'A'})
        cache.set("b", IdType.OPEN_ID, {'name': 'B'})

        assert cache.persist_dirty_data() == 0
        assert len(cache.get_dirty_data()) == 2

        store.should_fail = False
        assert cache.persist_dirty_data() == 2
        assert cache.get_dirty_data() == {}
        assert len(store.data) == 2

    def test_persist_with_nothing_dirty(self, cache):
        cache.set("a", IdType.OPEN_ID, {'name': 'A'})
        assert cache.persist_dirty_data() == 0

    def test_partial_persist_keeps_failures_dirty(self, clock):
        class FlakyStore(MockPersistentStore):
            def set(self, key, value, ttl_seconds):
                if key.endswith(':b'):
                    raise ConnectionError("flaky")
                super().set(key, value, ttl_seconds)

        store = FlakyStore()
        cache = TwoTierUserCache(store, clock=clock)
        cache.set("a", IdType.OPEN_ID, {'name': 'A'})
        cache.set("b", IdType.OPEN_ID, {'name': 'B'})

        assert cache.persist_dirty_data() == 0
        assert list(cache.get_dirty_data()) == [UserKey("b", IdType.OPEN_ID)]


class TestCleanMemoryCache:
    """Tests for age-based eviction."""

    @given(st.integers(min_value=0, max_value=100_000), st.integers(min_value=0, max_value=100_000))
    def test_dirty_entries_never_evicted_property(self, age, max_age):
        clock = FakeClock()
        cache = TwoTierUserCache(MockPersistentStore(should_fail=True), clock=clock)
        cache.set("u1", IdType.OPEN_ID, make_record(
            "u1", metadata={'last_sync': clock.now, 'last_access': clock.now}
        ))

        clock.advance(age)
        cache.clean_memory_cache(max_age)

        assert cache.get("u1", IdType.OPEN_ID) is not None
        assert cache.is_dirty("u1", IdType.OPEN_ID)

    def test_evicts_old_clean_entries_only(self, cache, clock):
        cache.set("old", IdType.OPEN_ID, {'metadata': {'last_access': clock.now - 5000}})
        cache.set("recent", IdType.OPEN_ID, {'metadata': {'last_access': clock.now - 10}})
        cache.set("synced", IdType.OPEN_ID, {'metadata': {'last_sync': clock.now - 5000}})
        cache.set("bare", IdType.OPEN_ID, {'name': 'no metadata'})

        assert cache.clean_memory_cache(3600) == 3
        assert cache.memory_size() == 1

    def test_evicted_entry_is_reloaded_from_store(self, store, cache, clock):
        cache.set("u1", IdType.OPEN_ID, {'name': 'A', 'metadata': {'last_sync': clock.now}})
        clock.advance(4000)

        assert cache.clean_memory_cache(3600) == 1
        assert cache.get("u1", IdType.OPEN_ID) == {'name': 'A', 'metadata': {'last_sync': clock.now - 4000}}
