import asyncio
import copy
import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest

from backend import storage
from housekeeping.coordinator import StorageCoordinator
from housekeeping.models import User
from housekeeping.stores.base import BackendUnavailable

TEST_DATA_DIR = Path("data-tests")
FIXED_NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe and re-init data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    storage.init_storage(TEST_DATA_DIR)
    yield
    # leave data-tests around after tests for inspection; CI can ignore it


class FakeTier:
    """In-memory CollectionStore that records every call."""

    def __init__(self, name, data=None, reachable=True, fail_reads=False, fail_writes=False):
        self.name = name
        self.data = data if data is not None else {}
        self.reachable = reachable
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.reads = []
        self.writes = []
        self.probes = 0

    async def probe(self):
        self.probes += 1
        return self.reachable

    async def read(self, collection):
        self.reads.append(collection)
        if self.fail_reads:
            raise BackendUnavailable(f"{self.name} read failed")
        return copy.deepcopy(self.data.get(collection))

    async def write(self, collection, value, changes=()):
        self.writes.append((collection, value, list(changes)))
        if self.fail_writes:
            raise BackendUnavailable(f"{self.name} write failed")
        self.data[collection] = copy.deepcopy(value)


@pytest.fixture
def fake_tier():
    """Factory: fake_tier("api", reachable=False, ...)."""
    return FakeTier


@pytest.fixture
def hold_reads():
    """hold_reads(tier, collection) -> (reading, release).

    The tier takes its value for that collection, sets `reading`, and only
    returns once `release` is set.
    """
    def hold(tier, collection):
        reading, release = asyncio.Event(), asyncio.Event()
        read = tier.read

        async def held_read(name):
            value = await read(name)
            if name == collection:
                reading.set()
                await release.wait()
            return value

        tier.read = held_read
        return reading, release

    return hold


@pytest.fixture
def tiers():
    return [FakeTier("api"), FakeTier("files"), FakeTier("local")]


@pytest.fixture
def coordinator(tiers):
    return StorageCoordinator(tiers, timeout=1.0, failure_threshold=3)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def admin():
    return User(id="Admin", type="admin", name="Admin")


@pytest.fixture
def housekeeper():
    return User(id="HK1", type="housekeeper", name="HK1")
