"""The storage-tier protocol, its error types, and entity-level change records.

Every tier stores the four named collections as JSON-ready wire values
(lists of camelCase dicts). The coordinator owns validation; tiers only move
bytes and report failures by raising StoreError subclasses.

A write carries the whole updated collection plus, where the caller knows it,
the entity-level changes that produced it. Tiers that can apply a single-entity
patch (the structured API) use the changes; tiers that replace whole documents
(file store, local cache) ignore them.
"""

from __future__ import annotations

from typing import Any, Literal, Protocol, Sequence, Union

from pydantic import BaseModel

from housekeeping.models import Archive, ChatMessage, RoomStatus, Task

Collection = Literal["rooms", "tasks", "messages", "archives"]
COLLECTIONS: tuple[Collection, ...] = ("rooms", "tasks", "messages", "archives")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class StoreError(RuntimeError):
    """Base class for every tier failure."""


class BackendUnavailable(StoreError):
    """Network error, timeout, or a non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CorruptData(StoreError):
    """A stored value could not be decoded."""


class WriteConflict(StoreError):
    """The version token sent with a write no longer matches the stored blob."""


class UnsupportedChange(StoreError):
    """The tier cannot apply this change as a single-entity patch."""


class CapacityExceeded(StoreError):
    """Local storage quota or disk space is exhausted."""


# ---------------------------------------------------------------------------
# Entity-level changes
# ---------------------------------------------------------------------------

class RoomStatusChanged(BaseModel):
    kind: Literal["room_status"] = "room_status"
    number: str
    status: RoomStatus


class GuestsChanged(BaseModel):
    kind: Literal["guests"] = "guests"
    number: str
    has_guests: bool


class TaskAdded(BaseModel):
    kind: Literal["task_added"] = "task_added"
    task: Task


class TaskCompleted(BaseModel):
    kind: Literal["task_completed"] = "task_completed"
    task_id: str
    completed_by: str


class TaskReopened(BaseModel):
    kind: Literal["task_reopened"] = "task_reopened"
    task_id: str


class MessageAdded(BaseModel):
    kind: Literal["message_added"] = "message_added"
    message: ChatMessage


class MessageUpdated(BaseModel):
    kind: Literal["message_updated"] = "message_updated"
    message: ChatMessage


class ArchiveAdded(BaseModel):
    kind: Literal["archive_added"] = "archive_added"
    archive: Archive


Change = Union[
    RoomStatusChanged,
    GuestsChanged,
    TaskAdded,
    TaskCompleted,
    TaskReopened,
    MessageAdded,
    MessageUpdated,
    ArchiveAdded,
]


# ---------------------------------------------------------------------------
# Protocol: every tier must match this shape
# ---------------------------------------------------------------------------

class CollectionStore(Protocol):
    name: str

    async def read(self, collection: Collection) -> Any | None:
        """Return the stored value, or None when the collection does not exist yet."""
        ...

    async def write(
        self, collection: Collection, value: list[dict], changes: Sequence[Change] = ()
    ) -> None:
        """Store the value. Raises StoreError on failure."""
        ...

    async def probe(self) -> bool:
        """Cheap reachability check. Never raises."""
        ...
