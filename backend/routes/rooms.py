"""Room endpoints."""

from fastapi import APIRouter, HTTPException

from backend import storage

from .models import GuestsBody, StatusBody

router = APIRouter()


@router.get("/rooms")
async def list_rooms():
    """All 40 rooms ordered by number."""
    return storage.list_rooms()


@router.put("/rooms/{number}/status")
async def update_room_status(number: str, body: StatusBody):
    if storage.update_room_status(number, body.status) is None:
        raise HTTPException(404, "Room not found")
    return {"success": True, "message": "Room status updated"}


@router.put("/rooms/{number}/guests")
async def update_guest_status(number: str, body: GuestsBody):
    if storage.update_guest_status(number, body.has_guests) is None:
        raise HTTPException(404, "Room not found")
    return {"success": True, "message": "Guest status updated"}
