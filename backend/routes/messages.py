"""Chat message endpoints."""

from fastapi import APIRouter, HTTPException

from backend import storage
from housekeeping.models import ChatMessage, utcnow

router = APIRouter()


@router.get("/messages")
async def list_messages():
    return storage.list_messages()


@router.post("/messages")
async def add_message(body: ChatMessage):
    message = body.model_copy(update={"timestamp": utcnow()})
    return {"success": True, "message": storage.add_message(message.to_wire())}


@router.put("/messages/{message_id}")
async def update_message(message_id: str, body: ChatMessage):
    """Rewrite a message, e.g. to refresh its embedded task snapshot."""
    if storage.update_message(message_id, body.to_wire()) is None:
        raise HTTPException(404, "Message not found")
    return {"success": True, "message": "Message updated"}
