import threading

import pytest

from infra.cache_store import CacheStore
from infra.settings import SettingsStore


@pytest.fixture
def store(tmp_path):
    return CacheStore(tmp_path / "events.db")


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(tmp_path / "settings")


@pytest.fixture
def release():
    """Event used to unblock a hanging FakeCollector at teardown."""
    event = threading.Event()
    yield event
    event.set()
