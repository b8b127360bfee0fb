"""Local cache tier: two redundant on-device stores behind one interface.

    KeyValueCache — synchronous, one JSON file per key plus a backup copy,
                    namespaced by prefix, bounded by a byte quota.
    SqliteCache   — asynchronous and transactional, one sqlite3 table driven
                    from a worker thread.
    LocalCache    — the tier the coordinator sees. Reads the first copy
                    that validates, drops invalid ones, restores the
                    key/value copy from SQLite, and writes to both stores.

Directory layout:

    {cache_dir}/
      housekeeping_rooms.json           ← main copy
      housekeeping_backup_rooms.json    ← backup copy
      housekeeping_lastResetDate.json
      housekeeping_user.json
      housekeeping.sqlite3              ← entries(key, value, updated_at)

The local tier is always reachable. Capacity exhaustion is caught here and
only surfaces through storage_info(); it never fails a write.
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import os
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Sequence

from .base import CapacityExceeded, Change, Collection, CorruptData, StoreError

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "housekeeping_"
BACKUP_PREFIX = "housekeeping_backup_"

# (collection, decoded value) -> whether the value is usable
Validator = Callable[[str, Any], bool]


# ---------------------------------------------------------------------------
# KeyValueCache: synchronous JSON files
# ---------------------------------------------------------------------------

class KeyValueCache:
    """Synchronous key/value store with a main and a backup copy per key."""

    def __init__(self, directory: Path, quota_bytes: int = 5 * 1024 * 1024) -> None:
        self._dir = directory
        self._dir.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes

    def _path(self, key: str, backup: bool = False) -> Path:
        prefix = BACKUP_PREFIX if backup else STORAGE_PREFIX
        return self._dir / f"{prefix}{key}.json"

    def _load(self, path: Path) -> Any | None:
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Discarding corrupt cache entry %s", path.name)
            path.unlink(missing_ok=True)
            return None

    def _write(self, path: Path, text: str) -> None:
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(text)
            os.replace(tmp, path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            if e.errno in (errno.ENOSPC, errno.EDQUOT):
                raise CapacityExceeded(f"No space left for {path.name}") from e
            raise StoreError(f"Cannot write {path.name}: {e}") from e

    def is_available(self) -> bool:
        probe = self._dir / "__cache_test__"
        try:
            probe.write_text("test")
            probe.unlink()
            return True
        except OSError:
            return False

    def get(self, key: str) -> Any | None:
        """Main copy first, then the backup (which restores the main copy)."""
        value = self._load(self._path(key))
        if value is not None:
            return value
        value = self._load(self._path(key, backup=True))
        if value is not None:
            logger.info("Restored cache key %r from backup copy", key)
            try:
                self._write(self._path(key), json.dumps(value))
            except StoreError as e:
                logger.warning("Could not restore main copy of %r: %s", key, e)
        return value

    def set(self, key: str, value: Any) -> None:
        text = json.dumps(value)
        current = sum(
            p.stat().st_size for p in (self._path(key), self._path(key, backup=True)) if p.is_file()
        )
        if self.used_bytes() - current + 2 * len(text.encode()) > self.quota_bytes:
            raise CapacityExceeded(f"Cache quota of {self.quota_bytes} bytes exceeded writing {key!r}")
        self._write(self._path(key), text)
        self._write(self._path(key, backup=True), text)

    def read_copy(self, key: str, backup: bool = False) -> Any | None:
        """One copy only, with no restoring from the other."""
        return self._load(self._path(key, backup))

    def drop_copy(self, key: str, backup: bool = False) -> None:
        self._path(key, backup).unlink(missing_ok=True)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._path(key, backup=True).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return sorted(
            p.stem[len(STORAGE_PREFIX):]
            for p in self._dir.glob(f"{STORAGE_PREFIX}*.json")
            if not p.name.startswith(BACKUP_PREFIX)
        )

    def clear(self) -> None:
        for path in self._dir.glob(f"{STORAGE_PREFIX}*.json"):
            path.unlink(missing_ok=True)

    def used_bytes(self) -> int:
        return sum(p.stat().st_size for p in self._dir.glob(f"{STORAGE_PREFIX}*.json"))


# ---------------------------------------------------------------------------
# SqliteCache: asynchronous, one transaction per write
# ---------------------------------------------------------------------------

class SqliteCache:
    """Transactional key/value store. Blocking sqlite3 calls run off the event loop."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._path)

    def _init_sync(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS entries("
                " key TEXT PRIMARY KEY,"
                " value TEXT NOT NULL,"
                " updated_at TEXT NOT NULL)"
            )
        self._ready = True

    async def _run(self, fn, *args):
        try:
            if not self._ready:
                await asyncio.to_thread(self._init_sync)
            return await asyncio.to_thread(fn, *args)
        except sqlite3.OperationalError as e:
            if "full" in str(e).lower():
                raise CapacityExceeded(f"SQLite cache is full: {e}") from e
            raise StoreError(f"SQLite cache error: {e}") from e
        except sqlite3.Error as e:
            raise StoreError(f"SQLite cache error: {e}") from e

    def _get_sync(self, key: str) -> str | None:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT value FROM entries WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def _set_sync(self, key: str, text: str) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT OR REPLACE INTO entries(key, value, updated_at) VALUES(?,?,?)",
                (key, text, datetime.now(timezone.utc).isoformat()),
            )

    def _delete_sync(self, key: str | None) -> None:
        with closing(self._connect()) as conn, conn:
            if key is None:
                conn.execute("DELETE FROM entries")
            else:
                conn.execute("DELETE FROM entries WHERE key=?", (key,))

    async def get(self, key: str) -> Any | None:
        text = await self._run(self._get_sync, key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt SQLite cache entry %r", key)
            await self.remove(key)
            return None

    async def set(self, key: str, value: Any) -> None:
        await self._run(self._set_sync, key, json.dumps(value))

    async def remove(self, key: str) -> None:
        await self._run(self._delete_sync, key)

    async def clear(self) -> None:
        await self._run(self._delete_sync, None)

    def size_bytes(self) -> int:
        return self._path.stat().st_size if self._path.is_file() else 0


# ---------------------------------------------------------------------------
# LocalCache: the tier
# ---------------------------------------------------------------------------

@dataclass
class StorageInfo:
    used: int
    quota: int
    available: int
    capacity_exceeded: bool


class LocalCache:
    """Both local stores presented as one always-available tier."""

    name = "local"

    def __init__(
        self, kv: KeyValueCache, db: SqliteCache, validator: Validator | None = None
    ) -> None:
        self.kv = kv
        self.db = db
        self._validator = validator
        self._capacity_exceeded = False

    @classmethod
    def in_directory(
        cls, directory: Path, quota_bytes: int, validator: Validator | None = None
    ) -> LocalCache:
        return cls(
            KeyValueCache(directory, quota_bytes),
            SqliteCache(directory / "housekeeping.sqlite3"),
            validator,
        )

    async def probe(self) -> bool:
        return True

    def _accepts(self, collection: Collection, value: Any) -> bool:
        return self._validator is None or self._validator(collection, value)

    async def _sqlite_copy(self, collection: Collection) -> Any | None:
        try:
            return await self.db.get(collection)
        except StoreError as e:
            logger.warning("SQLite cache read failed for %s: %s", collection, e)
            return None

    async def _copies(self, collection: Collection) -> AsyncIterator[tuple[str, Any]]:
        yield "main", self.kv.read_copy(collection)
        yield "backup", self.kv.read_copy(collection, backup=True)
        yield "sqlite", await self._sqlite_copy(collection)

    async def read(self, collection: Collection) -> Any | None:
        """First copy that validates: key/value main, key/value backup, then SQLite.

        Invalid copies are deleted; a copy found past the main one is written
        back into the key/value store.
        """
        async for where, value in self._copies(collection):
            if value is None:
                continue
            if not self._accepts(collection, value):
                logger.warning("Discarding invalid %s copy of %s", where, collection)
                await self._drop(collection, where)
                continue
            if where != "main":
                logger.info("Restored %s from the %s copy", collection, where)
                try:
                    self.kv.set(collection, value)
                except StoreError as e:
                    logger.warning("Could not restore %s into key/value cache: %s", collection, e)
            return value
        return None

    async def _drop(self, collection: Collection, where: str) -> None:
        if where == "sqlite":
            try:
                await self.db.remove(collection)
            except StoreError as e:
                logger.warning("Could not delete SQLite copy of %s: %s", collection, e)
        else:
            self.kv.drop_copy(collection, backup=where == "backup")

    async def write(
        self, collection: Collection, value: list[dict], changes: Sequence[Change] = ()
    ) -> None:
        errors: list[StoreError] = []
        capacity = False
        try:
            self.kv.set(collection, value)
        except CapacityExceeded as e:
            logger.warning("Key/value cache full: %s", e)
            capacity = True
        except StoreError as e:
            errors.append(e)
        try:
            await self.db.set(collection, value)
        except CapacityExceeded as e:
            logger.warning("SQLite cache full: %s", e)
            capacity = True
        except StoreError as e:
            errors.append(e)
        self._capacity_exceeded = capacity
        if len(errors) == 2:
            raise StoreError(f"Local cache write failed for {collection}: {errors[0]}")

    async def clear(self) -> None:
        self.kv.clear()
        await self.db.clear()
        self._capacity_exceeded = False

    def storage_info(self) -> StorageInfo:
        used = self.kv.used_bytes()
        quota = self.kv.quota_bytes
        return StorageInfo(
            used=used,
            quota=quota,
            available=max(quota - used, 0),
            capacity_exceeded=self._capacity_exceeded,
        )
