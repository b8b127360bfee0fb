"""Structured store tier — the authoritative per-entity REST API.

Endpoints (relative to the configured base URL, e.g. "http://localhost:3001/api"):

    GET  /health                    → {status, timestamp, database}
    GET  /rooms                     → [Room]
    PUT  /rooms/{number}/status     {status}       → {success, message}
    PUT  /rooms/{number}/guests     {hasGuests}    → {success, message}
    GET  /tasks                     → [Task]
    POST /tasks                     Task - timestamp → {success, task}
    PUT  /tasks/{id}/complete       {completedBy}  → {success, message}
    PUT  /tasks/{id}/reopen                         → {success, message}
    GET  /messages                  → [ChatMessage]
    POST /messages                  ChatMessage - timestamp → {success, message}
    PUT  /messages/{id}             ChatMessage    → {success, message}
    GET  /archives                  → [{date, summary, data, createdAt}]
    POST /archive                   {date, summary, data} → {success, message}
    PUT  /{collection}              [items]        → {success, message}   (bulk replace)

Non-2xx responses carry {"error": "..."}; that string becomes the failure
reason. Writes with entity-level changes use the per-entity endpoints
(last writer wins per entity); writes without them use the bulk replace.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from housekeeping.models import ChatMessage, Task

from .base import (
    ArchiveAdded,
    BackendUnavailable,
    Change,
    Collection,
    GuestsChanged,
    MessageAdded,
    MessageUpdated,
    RoomStatusChanged,
    StoreError,
    TaskAdded,
    TaskCompleted,
    TaskReopened,
    UnsupportedChange,
)

logger = logging.getLogger(__name__)


def _error_reason(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {resp.status_code}"


def _without_timestamp(wire: dict) -> dict:
    return {k: v for k, v in wire.items() if k != "timestamp"}


def flatten_archive(row: dict) -> dict:
    """API archive row → Archive wire form."""
    data = row.get("data") or {}
    flat = {"date": row.get("date"), "summary": row.get("summary"), **data}
    if row.get("createdAt"):
        flat["createdAt"] = row["createdAt"]
    return flat


def nest_archive(flat: dict) -> dict:
    """Archive wire form → API archive row."""
    data = {k: flat.get(k, []) for k in ("messages", "tasks", "roomStates")}
    row = {"date": flat["date"], "summary": flat["summary"], "data": data}
    if flat.get("createdAt"):
        row["createdAt"] = flat["createdAt"]
    return row


class StructuredStoreClient:
    """Async HTTP client for the structured store API.

    Args:
        base_url: API root, e.g. "http://localhost:3001/api".
        timeout:  HTTP timeout in seconds.
    """

    def __init__(self, base_url: str, timeout: float = 6.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _request(self, method: str, endpoint: str, body: Any = None) -> Any:
        url = f"{self._base_url}{endpoint}"
        logger.debug("api %s %s", method, url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.request(method, url, json=body, headers=self._headers())
        except httpx.ConnectError as e:
            raise BackendUnavailable(f"Cannot connect to structured store at {self._base_url}") from e
        except httpx.TimeoutException as e:
            raise BackendUnavailable(f"Structured store timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"Structured store request failed: {e}") from e

        if not resp.is_success:
            raise BackendUnavailable(_error_reason(resp), resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise BackendUnavailable(f"Structured store sent a non-JSON body for {endpoint}") from e

    # -- reads ---------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    async def list(self, collection: Collection) -> list[dict]:
        return await self._request("GET", f"/{collection}")

    # -- per-entity writes ----------------------------------------------------

    async def update_room_status(self, number: str, status: str) -> dict:
        return await self._request("PUT", f"/rooms/{number}/status", {"status": status})

    async def update_guest_status(self, number: str, has_guests: bool) -> dict:
        return await self._request("PUT", f"/rooms/{number}/guests", {"hasGuests": has_guests})

    async def add_task(self, task: Task) -> dict:
        return await self._request("POST", "/tasks", _without_timestamp(task.to_wire()))

    async def complete_task(self, task_id: str, completed_by: str) -> dict:
        return await self._request("PUT", f"/tasks/{task_id}/complete", {"completedBy": completed_by})

    async def reopen_task(self, task_id: str) -> dict:
        return await self._request("PUT", f"/tasks/{task_id}/reopen")

    async def add_message(self, message: ChatMessage) -> dict:
        return await self._request("POST", "/messages", _without_timestamp(message.to_wire()))

    async def update_message(self, message: ChatMessage) -> dict:
        return await self._request("PUT", f"/messages/{message.id}", message.to_wire())

    async def archive(self, date: str, summary: str, data: dict) -> dict:
        return await self._request("POST", "/archive", {"date": date, "summary": summary, "data": data})

    # -- bulk ----------------------------------------------------------------

    async def replace(self, collection: Collection, items: list[dict]) -> dict:
        return await self._request("PUT", f"/{collection}", items)


class ApiStore:
    """Tier adapter over StructuredStoreClient."""

    name = "api"

    def __init__(self, client: StructuredStoreClient) -> None:
        self._client = client

    async def probe(self) -> bool:
        try:
            await self._client.health()
        except StoreError as e:
            logger.info("Structured store probe failed: %s", e)
            return False
        return True

    async def read(self, collection: Collection) -> Any | None:
        items = await self._client.list(collection)
        if collection == "archives" and isinstance(items, list):
            return [flatten_archive(row) for row in items if isinstance(row, dict)]
        return items

    async def write(
        self, collection: Collection, value: list[dict], changes: Sequence[Change] = ()
    ) -> None:
        if changes:
            try:
                for change in changes:
                    await self._apply(change)
                return
            except UnsupportedChange as e:
                logger.debug("Falling back to bulk replace of %s: %s", collection, e)
        items = [nest_archive(a) for a in value] if collection == "archives" else value
        await self._client.replace(collection, items)

    async def _apply(self, change: Change) -> None:
        if isinstance(change, RoomStatusChanged):
            await self._client.update_room_status(change.number, change.status)
        elif isinstance(change, GuestsChanged):
            await self._client.update_guest_status(change.number, change.has_guests)
        elif isinstance(change, TaskAdded):
            await self._client.add_task(change.task)
        elif isinstance(change, TaskCompleted):
            await self._client.complete_task(change.task_id, change.completed_by)
        elif isinstance(change, TaskReopened):
            await self._client.reopen_task(change.task_id)
        elif isinstance(change, MessageAdded):
            await self._client.add_message(change.message)
        elif isinstance(change, MessageUpdated):
            await self._client.update_message(change.message)
        elif isinstance(change, ArchiveAdded):
            a = change.archive.to_wire()
            await self._client.archive(a["date"], a["summary"], nest_archive(a)["data"])
        else:
            raise UnsupportedChange(f"No endpoint for change {type(change).__name__}")
