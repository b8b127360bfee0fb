"""Room catalog generation and read-time derived views.

The property has a fixed catalog of 40 rooms: floors 1–5, units 1–8, numbered
"{floor}0{unit}" (101 … 508). The catalog is generated in one piece and never
partially created.

Derived values (workflow priority, overdue) are recomputed on every call and
never written back to storage.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, Literal

from pydantic import BaseModel

from housekeeping.models import Room, RoomStatus, utcnow

FLOORS = range(1, 6)
UNITS = range(1, 9)
CATALOG_SIZE = len(FLOORS) * len(UNITS)

WorkflowPriority = Literal["immediate", "after-checkout", "normal"]
DisplayStatus = Literal["checkout", "dirty", "clean", "default", "closed", "overdue"]

_NEEDS_TURNOVER: frozenset[str] = frozenset({"dirty", "checkout"})


def room_numbers() -> list[str]:
    return [f"{floor}0{unit}" for floor in FLOORS for unit in UNITS]


def generate_catalog(now: datetime | None = None) -> list[Room]:
    """Build the full room set with every room in the default state."""
    now = now or utcnow()
    return [
        Room(number=f"{floor}0{unit}", floor=floor, last_updated=now)
        for floor in FLOORS
        for unit in UNITS
    ]


def is_valid_catalog(rooms: Iterable[Room]) -> bool:
    """Exactly one room per catalog number, floors matching the numbers."""
    rooms = list(rooms)
    counts = Counter(r.number for r in rooms)
    if set(counts) != set(room_numbers()) or any(c != 1 for c in counts.values()):
        return False
    return all(r.floor == int(r.number[0]) for r in rooms)


def workflow_priority(room: Room) -> WorkflowPriority:
    if room.status in _NEEDS_TURNOVER:
        return "after-checkout" if room.has_guests else "immediate"
    return "normal"


def is_overdue(room: Room, now: datetime, hours: float = 24) -> bool:
    if room.last_cleaned is None or room.status == "dirty":
        return False
    return now - room.last_cleaned > timedelta(hours=hours)


class RoomView(BaseModel):
    """A room as the dashboard shows it: persisted state plus derived signals."""

    room: Room
    overdue: bool
    display_status: DisplayStatus
    priority: WorkflowPriority


def room_view(room: Room, now: datetime, overdue_hours: float = 24) -> RoomView:
    overdue = is_overdue(room, now, overdue_hours)
    return RoomView(
        room=room,
        overdue=overdue,
        display_status="overdue" if overdue else room.status,
        priority=workflow_priority(room),
    )


def status_counts(rooms: Iterable[Room]) -> dict[RoomStatus, int]:
    counts: dict[RoomStatus, int] = {
        "checkout": 0, "dirty": 0, "clean": 0, "default": 0, "closed": 0,
    }
    for room in rooms:
        counts[room.status] += 1
    return counts
