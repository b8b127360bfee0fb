"""Task list storage."""

from datetime import datetime, timezone
from typing import Any

from .core import collection_path, read_json, write_json


def list_tasks() -> list[dict[str, Any]]:
    """Load all tasks. Returns [] if missing."""
    return read_json(collection_path("tasks"), [])


def save_tasks(tasks: list[dict[str, Any]]) -> None:
    write_json(collection_path("tasks"), tasks)


def add_task(task: dict[str, Any]) -> dict[str, Any]:
    """Append a task; an existing task with the same id is replaced."""
    tasks = [t for t in list_tasks() if t["id"] != task["id"]]
    tasks.append(task)
    save_tasks(tasks)
    return task


def _update_task(task_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
    tasks = list_tasks()
    for task in tasks:
        if task["id"] == task_id:
            task.update(changes)
            save_tasks(tasks)
            return task
    return None


def complete_task(task_id: str, completed_by: str) -> dict[str, Any] | None:
    """Mark a task completed. Returns None if not found.

    A task that is already completed keeps its original completion.
    """
    for task in list_tasks():
        if task["id"] == task_id and task.get("completed"):
            return task
    return _update_task(task_id, {
        "completed": True,
        "completedBy": completed_by,
        "completedAt": datetime.now(timezone.utc).isoformat(),
    })


def reopen_task(task_id: str) -> dict[str, Any] | None:
    return _update_task(task_id, {"completed": False, "completedBy": None, "completedAt": None})
