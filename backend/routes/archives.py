"""Archive endpoints and the bulk collection replace used by resets and imports."""

from typing import Any

from fastapi import APIRouter, Body, HTTPException

from backend import storage
from housekeeping.coordinator import to_wire, validate_collection
from housekeeping.stores.api import flatten_archive, nest_archive
from housekeeping.stores.base import COLLECTIONS

from .models import ArchiveBody

router = APIRouter()

_SAVERS = {
    "rooms": storage.save_rooms,
    "tasks": storage.save_tasks,
    "messages": storage.save_messages,
    "archives": storage.save_archives,
}


@router.get("/archives")
async def list_archives():
    return storage.list_archives()


@router.post("/archive")
async def add_archive(body: ArchiveBody):
    storage.add_archive(body.date, body.summary, body.data)
    return {"success": True, "message": "Data archived successfully"}


@router.put("/{collection}")
async def replace_collection(collection: str, items: list[dict[str, Any]] = Body(...)):
    """Replace a whole collection. Rooms must form the complete catalog."""
    if collection not in COLLECTIONS:
        raise HTTPException(404, f"Unknown collection: {collection}")
    raw = [flatten_archive(a) for a in items] if collection == "archives" else items
    parsed = validate_collection(collection, raw)
    if parsed is None:
        raise HTTPException(400, f"Invalid {collection} data")
    wire = to_wire(parsed)
    if collection == "archives":
        wire = [nest_archive(a) for a in wire]
    _SAVERS[collection](wire)
    return {"success": True, "message": f"{collection} replaced"}
