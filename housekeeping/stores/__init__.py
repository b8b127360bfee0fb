"""Storage tiers behind one CollectionStore interface.

Priority order, highest first:
  api     Structured store (per-entity REST API, authoritative when reachable)
  files   Remote file store (one versioned JSON blob per collection)
  local   Local cache (key/value files + SQLite, always reachable)
"""

# Re-export the public surface so `from housekeeping.stores import ...` works.

from .base import (  # noqa: F401
    COLLECTIONS,
    ArchiveAdded,
    BackendUnavailable,
    CapacityExceeded,
    Change,
    Collection,
    CollectionStore,
    CorruptData,
    GuestsChanged,
    MessageAdded,
    MessageUpdated,
    RoomStatusChanged,
    StoreError,
    TaskAdded,
    TaskCompleted,
    TaskReopened,
    UnsupportedChange,
    WriteConflict,
)

from .api import ApiStore, StructuredStoreClient  # noqa: F401

from .files import Blob, FileStore, FileStoreClient  # noqa: F401

from .local import KeyValueCache, LocalCache, SqliteCache, StorageInfo  # noqa: F401
