"""Room catalog storage. The catalog is seeded on first access."""

import logging
from datetime import datetime, timezone
from typing import Any

from housekeeping.rooms import generate_catalog

from .core import collection_path, read_json, write_json

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def list_rooms() -> list[dict[str, Any]]:
    """All rooms ordered by number, creating the 40-room catalog if none exists."""
    path = collection_path("rooms")
    rooms = read_json(path, None)
    if not rooms:
        logger.info("Seeding room catalog")
        rooms = [r.to_wire() for r in generate_catalog()]
        write_json(path, rooms)
    return sorted(rooms, key=lambda r: r["number"])


def save_rooms(rooms: list[dict[str, Any]]) -> None:
    write_json(collection_path("rooms"), rooms)


def _update_room(number: str, changes: dict[str, Any]) -> dict[str, Any] | None:
    rooms = list_rooms()
    for room in rooms:
        if room["number"] == number:
            room.update(changes)
            room["lastUpdated"] = _now()
            save_rooms(rooms)
            return room
    return None


def update_room_status(number: str, status: str) -> dict[str, Any] | None:
    """Set a room's status. Returns None if the room does not exist.

    Marking a room clean stamps lastCleaned; other statuses keep it.
    """
    changes: dict[str, Any] = {"status": status}
    if status == "clean":
        changes["lastCleaned"] = _now()
    return _update_room(number, changes)


def update_guest_status(number: str, has_guests: bool) -> dict[str, Any] | None:
    return _update_room(number, {"hasGuests": has_guests})
