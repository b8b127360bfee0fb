"""Task endpoints."""

from fastapi import APIRouter, HTTPException

from backend import storage
from housekeeping.models import Task, utcnow

from .models import CompleteBody

router = APIRouter()


@router.get("/tasks")
async def list_tasks():
    return storage.list_tasks()


@router.post("/tasks")
async def add_task(body: Task):
    """Store a new task. The server assigns the timestamp."""
    task = body.model_copy(update={"timestamp": utcnow()})
    return {"success": True, "task": storage.add_task(task.to_wire())}


@router.put("/tasks/{task_id}/complete")
async def complete_task(task_id: str, body: CompleteBody):
    if storage.complete_task(task_id, body.completed_by) is None:
        raise HTTPException(404, "Task not found")
    return {"success": True, "message": "Task completed"}


@router.put("/tasks/{task_id}/reopen")
async def reopen_task(task_id: str):
    if storage.reopen_task(task_id) is None:
        raise HTTPException(404, "Task not found")
    return {"success": True, "message": "Task reopened"}
