"""
Pytest configuration and fixtures for the test suite.
"""
import pytest
from hypothesis import settings

from directory_sync.sync.cache import TwoTierUserCache
from directory_sync.sync.config import SyncConfig
from directory_sync.sync.service import UserSyncService

from mocks import FakeClock, MockEventSink, MockPersistentStore, MockRemoteUserSource

# Configure Hypothesis settings for all tests
# Disable deadline to avoid flaky failures on slow machines
settings.register_profile("default", deadline=None)
settings.load_profile("default")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def remote():
    return MockRemoteUserSource()


@pytest.fixture
def store():
    return MockPersistentStore()


@pytest.fixture
def sink():
    return MockEventSink()


@pytest.fixture
def cache(store, clock):
    return TwoTierUserCache(store, clock=clock)


@pytest.fixture
def service(remote, cache, sink, clock):
    """Sync service wired to mocks and a manual clock."""
    return UserSyncService(remote, cache, sink, config=SyncConfig(), clock=clock)
