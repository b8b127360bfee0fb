"""Tests for housekeeping.stores.local: key/value files, SQLite, and the combined tier."""

import errno
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from housekeeping.stores.base import CapacityExceeded, StoreError
from housekeeping.stores.local import KeyValueCache, LocalCache, SqliteCache


# ---------------------------------------------------------------------------
# KeyValueCache
# ---------------------------------------------------------------------------

class TestKeyValueCache:
    @pytest.fixture
    def kv(self, tmp_path: Path) -> KeyValueCache:
        return KeyValueCache(tmp_path, quota_bytes=10_000)

    def test_missing_key_is_none(self, kv: KeyValueCache) -> None:
        assert kv.get("rooms") is None

    def test_set_writes_main_and_backup(self, kv: KeyValueCache, tmp_path: Path) -> None:
        kv.set("tasks", [{"id": "1"}])
        assert json.loads((tmp_path / "housekeeping_tasks.json").read_text()) == [{"id": "1"}]
        assert json.loads((tmp_path / "housekeeping_backup_tasks.json").read_text()) == [{"id": "1"}]
        assert kv.get("tasks") == [{"id": "1"}]

    def test_corrupt_main_falls_back_to_backup(self, kv: KeyValueCache, tmp_path: Path) -> None:
        kv.set("tasks", [{"id": "1"}])
        (tmp_path / "housekeeping_tasks.json").write_text("{not json")
        assert kv.get("tasks") == [{"id": "1"}]
        # main copy restored from the backup
        assert json.loads((tmp_path / "housekeeping_tasks.json").read_text()) == [{"id": "1"}]

    def test_corrupt_entries_are_deleted(self, kv: KeyValueCache, tmp_path: Path) -> None:
        (tmp_path / "housekeeping_messages.json").write_text("garbage")
        assert kv.get("messages") is None
        assert not (tmp_path / "housekeeping_messages.json").exists()

    def test_quota_exceeded(self, tmp_path: Path) -> None:
        kv = KeyValueCache(tmp_path, quota_bytes=50)
        with pytest.raises(CapacityExceeded):
            kv.set("rooms", [{"number": str(i)} for i in range(20)])
        assert kv.get("rooms") is None

    def test_overwrite_does_not_count_old_value(self, tmp_path: Path) -> None:
        kv = KeyValueCache(tmp_path, quota_bytes=100)
        kv.set("k", "x" * 30)
        kv.set("k", "y" * 30)
        assert kv.get("k") == "y" * 30

    def test_disk_full_maps_to_capacity(self, kv: KeyValueCache) -> None:
        with patch("pathlib.Path.write_text", side_effect=OSError(errno.ENOSPC, "No space")):
            with pytest.raises(CapacityExceeded):
                kv.set("rooms", [])

    def test_keys_remove_clear(self, kv: KeyValueCache) -> None:
        kv.set("rooms", [])
        kv.set("user", {"id": "HK1"})
        assert kv.keys() == ["rooms", "user"]
        kv.remove("user")
        assert kv.keys() == ["rooms"]
        kv.clear()
        assert kv.keys() == []
        assert kv.used_bytes() == 0

    def test_is_available(self, kv: KeyValueCache) -> None:
        assert kv.is_available()


# ---------------------------------------------------------------------------
# SqliteCache
# ---------------------------------------------------------------------------

class TestSqliteCache:
    @pytest.fixture
    def db(self, tmp_path: Path) -> SqliteCache:
        return SqliteCache(tmp_path / "cache.sqlite3")

    async def test_set_and_get(self, db: SqliteCache) -> None:
        await db.set("rooms", [{"number": "101"}])
        assert await db.get("rooms") == [{"number": "101"}]

    async def test_missing_is_none(self, db: SqliteCache) -> None:
        assert await db.get("tasks") is None

    async def test_replace_value(self, db: SqliteCache) -> None:
        await db.set("tasks", [1])
        await db.set("tasks", [2])
        assert await db.get("tasks") == [2]

    async def test_corrupt_row_deleted(self, db: SqliteCache) -> None:
        await db.set("tasks", [])
        await db._run(db._set_sync, "tasks", "{broken")
        assert await db.get("tasks") is None
        assert await db._run(db._get_sync, "tasks") is None

    async def test_clear(self, db: SqliteCache) -> None:
        await db.set("a", 1)
        await db.set("b", 2)
        await db.clear()
        assert await db.get("a") is None
        assert await db.get("b") is None

    async def test_unopenable_database_raises_store_error(self, tmp_path: Path) -> None:
        (tmp_path / "dir.sqlite3").mkdir()
        db = SqliteCache(tmp_path / "dir.sqlite3")
        with pytest.raises(StoreError):
            await db.get("rooms")


# ---------------------------------------------------------------------------
# LocalCache tier
# ---------------------------------------------------------------------------

class TestLocalCache:
    @pytest.fixture
    def cache(self, tmp_path: Path) -> LocalCache:
        return LocalCache.in_directory(tmp_path, quota_bytes=100_000)

    async def test_always_reachable(self, cache: LocalCache) -> None:
        assert await cache.probe() is True

    async def test_write_goes_to_both_stores(self, cache: LocalCache) -> None:
        await cache.write("tasks", [{"id": "1"}])
        assert cache.kv.get("tasks") == [{"id": "1"}]
        assert await cache.db.get("tasks") == [{"id": "1"}]

    async def test_read_prefers_key_value_copy(self, cache: LocalCache) -> None:
        cache.kv.set("tasks", [{"id": "kv"}])
        await cache.db.set("tasks", [{"id": "db"}])
        assert await cache.read("tasks") == [{"id": "kv"}]

    async def test_read_restores_key_value_from_sqlite(self, cache: LocalCache) -> None:
        await cache.db.set("tasks", [{"id": "db"}])
        assert await cache.read("tasks") == [{"id": "db"}]
        assert cache.kv.get("tasks") == [{"id": "db"}]

    async def test_read_missing_everywhere(self, cache: LocalCache) -> None:
        assert await cache.read("messages") is None

    async def test_capacity_is_recorded_not_raised(self, tmp_path: Path) -> None:
        cache = LocalCache.in_directory(tmp_path, quota_bytes=10)
        await cache.write("rooms", [{"number": "101"}] * 10)
        info = cache.storage_info()
        assert info.capacity_exceeded is True
        assert info.quota == 10
        # the SQLite copy still holds the value
        assert await cache.db.get("rooms") == [{"number": "101"}] * 10

    async def test_capacity_flag_clears_after_successful_write(self, tmp_path: Path) -> None:
        cache = LocalCache.in_directory(tmp_path, quota_bytes=200)
        await cache.write("rooms", ["x" * 100] * 5)
        assert cache.storage_info().capacity_exceeded
        await cache.write("rooms", [])
        assert not cache.storage_info().capacity_exceeded

    async def test_both_stores_failing_raises(self, cache: LocalCache) -> None:
        with patch.object(cache.kv, "set", side_effect=StoreError("disk gone")), \
             patch.object(cache.db, "set", side_effect=StoreError("db gone")):
            with pytest.raises(StoreError):
                await cache.write("tasks", [])

    async def test_one_store_failing_is_tolerated(self, cache: LocalCache) -> None:
        with patch.object(cache.kv, "set", side_effect=StoreError("disk gone")):
            await cache.write("tasks", [{"id": "1"}])
        assert await cache.db.get("tasks") == [{"id": "1"}]

    async def test_storage_info(self, cache: LocalCache) -> None:
        await cache.write("tasks", [{"id": "1"}])
        info = cache.storage_info()
        assert info.used > 0
        assert info.available == info.quota - info.used

    async def test_clear(self, cache: LocalCache) -> None:
        await cache.write("tasks", [{"id": "1"}])
        await cache.clear()
        assert await cache.read("tasks") is None


class TestLocalCacheValidation:
    @pytest.fixture
    def cache(self, tmp_path: Path) -> LocalCache:
        def has_ids(collection, value):
            return isinstance(value, list) and all(isinstance(i, dict) and "id" in i for i in value)

        return LocalCache.in_directory(tmp_path, quota_bytes=100_000, validator=has_ids)

    async def test_invalid_main_copy_falls_back_to_backup(self, cache: LocalCache, tmp_path: Path) -> None:
        cache.kv.set("tasks", [{"id": "good"}])
        (tmp_path / "housekeeping_tasks.json").write_text(json.dumps([{"name": "no id"}]))
        assert await cache.read("tasks") == [{"id": "good"}]
        assert cache.kv.read_copy("tasks") == [{"id": "good"}]

    async def test_invalid_key_value_copies_fall_back_to_sqlite(self, cache: LocalCache) -> None:
        await cache.db.set("tasks", [{"id": "db"}])
        cache.kv.set("tasks", [{"completed": "maybe"}])
        assert await cache.read("tasks") == [{"id": "db"}]
        assert cache.kv.read_copy("tasks") == [{"id": "db"}]
        assert cache.kv.read_copy("tasks", backup=True) == [{"id": "db"}]

    async def test_every_copy_invalid(self, cache: LocalCache) -> None:
        await cache.db.set("tasks", ["bad"])
        cache.kv.set("tasks", ["bad"])
        assert await cache.read("tasks") is None
        assert cache.kv.read_copy("tasks") is None
        assert cache.kv.read_copy("tasks", backup=True) is None
        assert await cache.db.get("tasks") is None
