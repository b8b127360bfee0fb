"""Core domain models.

Every storage tier, the coordinator and the domain store operate on these
types. Pydantic validates at every data boundary; the wire form uses
camelCase keys and ISO 8601 timestamps:

    room.model_dump(mode="json", by_alias=True)
    → {"number": "101", "floor": 1, "status": "default", "hasGuests": false,
       "lastCleaned": null, "lastUpdated": "2026-01-01T08:00:00Z"}
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

RoomStatus = Literal["checkout", "dirty", "clean", "default", "closed"]
MessageType = Literal["message", "task"]
UserType = Literal["admin", "housekeeper"]

ADMIN_SLOT = "Admin"
HOUSEKEEPER_SLOTS = ("HK1", "HK2", "HK3", "HK4")

_last_id = 0


def new_id() -> str:
    """Return a unique id that sorts in creation order within this process."""
    global _last_id
    _last_id = max(time.time_ns() // 1000, _last_id + 1)
    return str(_last_id)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value):
        # naive timestamps from older stores are UTC
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Room(WireModel):
    """One physical room. Identity is the room number."""

    number: str
    floor: int
    status: RoomStatus = "default"
    has_guests: bool = False
    last_cleaned: datetime | None = None
    last_updated: datetime = Field(default_factory=utcnow)


class Task(WireModel):
    """An ad-hoc staff task tied to a room."""

    id: str = Field(default_factory=new_id)
    room_number: str
    message: str
    created_by: str
    completed: bool = False
    completed_by: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @model_validator(mode="after")
    def _check_completion(self) -> Task:
        has_completion = self.completed_by is not None and self.completed_at is not None
        if self.completed and not has_completion:
            raise ValueError("completed task needs completedBy and completedAt")
        if not self.completed and (self.completed_by is not None or self.completed_at is not None):
            raise ValueError("open task cannot carry completedBy/completedAt")
        return self

    def complete(self, by: str, at: datetime) -> Task:
        return self.model_copy(update={"completed": True, "completed_by": by, "completed_at": at})

    def reopen(self) -> Task:
        return self.model_copy(update={"completed": False, "completed_by": None, "completed_at": None})


class ChatMessage(WireModel):
    """An entry in the daily chat log.

    Task-linked messages (type="task") embed a snapshot of the task. The
    snapshot is denormalised: whoever mutates the task rewrites the message.
    """

    id: str = Field(default_factory=new_id)
    type: MessageType = "message"
    sender: str
    sender_type: UserType | None = None
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    task: Task | None = None


class Archive(WireModel):
    """Snapshot of one calendar day, written once by the daily reset."""

    date: str  # YYYY-MM-DD
    summary: str
    messages: list[ChatMessage] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    room_states: list[Room] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class User(WireModel):
    """The identity chosen at login. Lives only in the local cache."""

    id: str
    type: UserType
    name: str

    @property
    def is_admin(self) -> bool:
        return self.type == "admin"
