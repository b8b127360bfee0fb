"""In-memory domain state with optimistic updates.

Every mutation is applied to local state first and then handed to the
storage coordinator. The local change is never rolled back: a write that no
tier accepted marks the touched entities "diverged" and records last_error,
and the next successful refresh() silently replaces them with whatever the
storage tiers hold.

Per-entity sync state:

    synced   ──mutate──▶ pending ──write ok──────▶ synced
                                 └─write failed──▶ diverged ──refresh──▶ synced

Each mutation bumps a generation counter on the entities it touches, so a
slow write that finishes after a newer mutation on the same entity does not
settle the newer mutation's state, and a refresh whose reads were in flight
during a mutation does not overwrite it with the older stored value.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Literal, Mapping, Sequence

from housekeeping.coordinator import StorageCoordinator, WriteResult
from housekeeping.models import Archive, ChatMessage, Room, RoomStatus, Task, User, utcnow
from housekeeping.reset import Snapshot
from housekeeping.rooms import RoomView, room_numbers, room_view
from housekeeping.stores.base import (
    COLLECTIONS,
    Change,
    Collection,
    GuestsChanged,
    MessageAdded,
    MessageUpdated,
    RoomStatusChanged,
    TaskAdded,
    TaskCompleted,
    TaskReopened,
)

logger = logging.getLogger(__name__)

SyncState = Literal["synced", "pending", "diverged"]
EntityKind = Literal["room", "task", "message"]
EntityKey = tuple[EntityKind, str]


class UnknownRoom(KeyError):
    pass


class UnknownTask(KeyError):
    pass


class DomainStore:
    """Render-facing state for rooms, tasks, messages and archives."""

    def __init__(
        self,
        coordinator: StorageCoordinator,
        clock: Callable[[], datetime] = utcnow,
        overdue_hours: float = 24.0,
    ) -> None:
        self._coordinator = coordinator
        self._clock = clock
        self._overdue_hours = overdue_hours
        self._rooms: dict[str, Room] = {}
        self._tasks: list[Task] = []
        self._messages: list[ChatMessage] = []
        self._archives: list[Archive] = []
        self._sync: dict[EntityKey, SyncState] = {}
        self._generation: dict[EntityKey, int] = {}
        # whole-collection replacements (load, reset, undo, import)
        self._replaced: dict[Collection, int] = {}
        self.last_error: str | None = None

    # -- views -------------------------------------------------------------

    @property
    def rooms(self) -> list[Room]:
        order = {n: i for i, n in enumerate(room_numbers())}
        return sorted(self._rooms.values(), key=lambda r: order.get(r.number, len(order)))

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def archives(self) -> list[Archive]:
        return list(self._archives)

    def room(self, number: str) -> Room:
        try:
            return self._rooms[number]
        except KeyError:
            raise UnknownRoom(number) from None

    def task(self, task_id: str) -> Task:
        for task in self._tasks:
            if task.id == task_id:
                return task
        raise UnknownTask(task_id)

    def room_views(self, now: datetime | None = None) -> list[RoomView]:
        """Rooms with overdue and priority signals derived at call time."""
        now = now or self._clock()
        return [room_view(r, now, self._overdue_hours) for r in self.rooms]

    def sync_state(self, kind: EntityKind, key: str) -> SyncState:
        return self._sync.get((kind, key), "synced")

    def snapshot(self) -> Snapshot:
        return Snapshot(
            rooms=self.rooms,
            tasks=self.tasks,
            messages=self.messages,
            archives=self.archives,
        )

    # -- loading -------------------------------------------------------------

    async def load(self) -> dict[Collection, str | None]:
        """Rebuild every collection from storage; returns the source tier of each."""
        rooms, tasks, messages, archives = await asyncio.gather(
            self._coordinator.read("rooms"),
            self._coordinator.read("tasks"),
            self._coordinator.read("messages"),
            self._coordinator.read("archives"),
        )
        self._rooms = {r.number: r for r in rooms.value}
        self._tasks = list(tasks.value)
        self._messages = list(messages.value)
        self._archives = list(archives.value)
        self._sync.clear()
        self._generation.clear()
        self._bump_replaced(COLLECTIONS)
        self.last_error = None

        if rooms.source is None:
            logger.info("No stored room catalog found, persisting a generated one")
            await self._persist("rooms", [])

        sources = {r.collection: r.source for r in (rooms, tasks, messages, archives)}
        logger.info("Loaded domain state from %s", sources)
        return sources

    async def refresh(self) -> None:
        """Overwrite local entities with stored values.

        Entities that are pending, or that were mutated while the reads were
        in flight, keep their local value; a collection replaced wholesale
        during the reads is left alone entirely.
        """
        generations = dict(self._generation)
        replaced = dict(self._replaced)
        results = await asyncio.gather(
            self._coordinator.read("rooms"),
            self._coordinator.read("tasks"),
            self._coordinator.read("messages"),
            self._coordinator.read("archives"),
        )
        for result in results:
            if result.source is None:
                continue
            if self._replaced.get(result.collection, 0) != replaced.get(result.collection, 0):
                logger.debug("Skipping refresh of %s, replaced while reading", result.collection)
                continue
            if result.collection == "rooms":
                for room in result.value:
                    if not self._held("room", room.number, generations):
                        self._reconcile("room", room.number)
                        self._rooms[room.number] = room
            elif result.collection == "tasks":
                self._tasks = self._merge("task", self._tasks, result.value, generations)
            elif result.collection == "messages":
                self._messages = self._merge("message", self._messages, result.value, generations)
            else:
                self._archives = list(result.value)

    def _held(self, kind: EntityKind, key: str, generations: Mapping[EntityKey, int]) -> bool:
        if self.sync_state(kind, key) == "pending":
            return True
        return self._generation.get((kind, key), 0) != generations.get((kind, key), 0)

    def _reconcile(self, kind: EntityKind, key: str) -> None:
        if self.sync_state(kind, key) == "diverged":
            logger.debug("Refresh replaced diverged %s %s", kind, key)
            self._sync[(kind, key)] = "synced"

    def _merge(
        self, kind: EntityKind, local: list, stored: list, generations: Mapping[EntityKey, int]
    ) -> list:
        held = {item.id: item for item in local if self._held(kind, item.id, generations)}
        merged = []
        for item in stored:
            if item.id in held:
                merged.append(held.pop(item.id))
            else:
                self._reconcile(kind, item.id)
                merged.append(item)
        # held items the read did not include stay at the end
        merged.extend(held.values())
        return merged

    # -- persistence -----------------------------------------------------------

    def _items(self, collection: Collection) -> list:
        if collection == "rooms":
            return self.rooms
        if collection == "tasks":
            return self.tasks
        if collection == "messages":
            return self.messages
        return self.archives

    async def _persist(
        self,
        collection: Collection,
        touched: Sequence[EntityKey],
        changes: Sequence[Change] = (),
    ) -> WriteResult:
        generations: dict[EntityKey, int] = {}
        for key in touched:
            generations[key] = self._generation.get(key, 0) + 1
            self._generation[key] = generations[key]
            self._sync[key] = "pending"

        result = await self._coordinator.write(collection, self._items(collection), changes)

        state: SyncState = "synced" if result.ok else "diverged"
        for key, generation in generations.items():
            if self._generation.get(key) == generation:
                self._sync[key] = state
        if result.ok:
            self.last_error = None
        else:
            reasons = "; ".join(f"{tier}: {err}" for tier, err in result.errors.items())
            self.last_error = f"{collection} not saved ({reasons or 'no storage tier reachable'})"
            logger.warning("Keeping local %s after failed write: %s", collection, self.last_error)
        return result

    async def replace_all(self, snapshot: Snapshot) -> dict[Collection, WriteResult]:
        """Swap in a whole new state and write every collection (reset, undo, import)."""
        self._rooms = {r.number: r for r in snapshot.rooms}
        self._tasks = list(snapshot.tasks)
        self._messages = list(snapshot.messages)
        self._archives = list(snapshot.archives)
        self._bump_replaced(COLLECTIONS)
        results = await asyncio.gather(*(self._persist(c, []) for c in COLLECTIONS))
        return dict(zip(COLLECTIONS, results))

    def _bump_replaced(self, collections: Sequence[Collection]) -> None:
        for collection in collections:
            self._replaced[collection] = self._replaced.get(collection, 0) + 1

    # -- rooms -------------------------------------------------------------------

    async def update_room_status(self, number: str, status: RoomStatus) -> WriteResult:
        return await self.bulk_update_status([number], status)

    async def bulk_update_status(self, numbers: Sequence[str], status: RoomStatus) -> WriteResult:
        """Give several rooms the same status in one write."""
        for number in numbers:
            self.room(number)
        now = self._clock()
        update: dict = {"status": status, "last_updated": now}
        if status == "clean":
            update["last_cleaned"] = now
        for number in numbers:
            room = self._rooms[number]
            self._rooms[number] = room.model_copy(update=update)
            logger.debug("Room %s: %s -> %s", number, room.status, status)
        return await self._persist(
            "rooms",
            [("room", n) for n in numbers],
            [RoomStatusChanged(number=n, status=status) for n in numbers],
        )

    async def update_guest_status(self, number: str, has_guests: bool) -> WriteResult:
        return await self.bulk_update_guests({number: has_guests})

    async def bulk_update_guests(self, occupancy: Mapping[str, bool]) -> WriteResult:
        """Set guest presence for several rooms in one write."""
        for number in occupancy:
            self.room(number)
        now = self._clock()
        for number, has_guests in occupancy.items():
            self._rooms[number] = self._rooms[number].model_copy(
                update={"has_guests": has_guests, "last_updated": now}
            )
        return await self._persist(
            "rooms",
            [("room", n) for n in occupancy],
            [GuestsChanged(number=n, has_guests=g) for n, g in occupancy.items()],
        )

    # -- tasks and messages ------------------------------------------------------

    def _notice(self, user: User, content: str) -> ChatMessage:
        return ChatMessage(sender=user.name, sender_type=user.type, content=content, timestamp=self._clock())

    async def _post(self, message: ChatMessage, changes: Sequence[Change] = ()) -> WriteResult:
        self._messages.append(message)
        touched: list[EntityKey] = [("message", c.message.id) for c in changes if isinstance(c, MessageUpdated)]
        touched.append(("message", message.id))
        return await self._persist("messages", touched, [*changes, MessageAdded(message=message)])

    async def send_message(self, content: str, user: User) -> ChatMessage:
        message = self._notice(user, content)
        await self._post(message)
        return message

    async def add_task(self, room_number: str, message: str, user: User) -> Task:
        """Create a task and the chat message announcing it."""
        self.room(room_number)
        now = self._clock()
        task = Task(room_number=room_number, message=message, created_by=user.name, timestamp=now)
        self._tasks.append(task)
        announcement = ChatMessage(
            type="task",
            sender=user.name,
            sender_type=user.type,
            content=f"Room {room_number}: {message}",
            timestamp=now,
            task=task,
        )
        await self._persist("tasks", [("task", task.id)], [TaskAdded(task=task)])
        await self._post(announcement)
        return task

    def _set_task(self, updated: Task) -> list[ChatMessage]:
        """Store the task and rewrite every message embedding it."""
        self._tasks = [updated if t.id == updated.id else t for t in self._tasks]
        rewritten = []
        for i, msg in enumerate(self._messages):
            if msg.task is not None and msg.task.id == updated.id:
                self._messages[i] = msg.model_copy(update={"task": updated})
                rewritten.append(self._messages[i])
        return rewritten

    async def complete_task(self, task_id: str, user: User) -> Task:
        """Mark a task done. Completing an already completed task changes nothing."""
        task = self.task(task_id)
        if task.completed:
            logger.debug("Task %s already completed by %s", task_id, task.completed_by)
            return task
        done = task.complete(user.name, self._clock())
        rewritten = self._set_task(done)
        await self._persist(
            "tasks", [("task", task_id)], [TaskCompleted(task_id=task_id, completed_by=user.name)]
        )
        await self._post(
            self._notice(user, f"Task completed for Room {task.room_number}"),
            [MessageUpdated(message=m) for m in rewritten],
        )
        return done

    async def reopen_task(self, task_id: str, user: User) -> Task:
        task = self.task(task_id)
        if not task.completed:
            return task
        reopened = task.reopen()
        rewritten = self._set_task(reopened)
        await self._persist("tasks", [("task", task_id)], [TaskReopened(task_id=task_id)])
        await self._post(
            self._notice(user, f"Task reopened for Room {task.room_number}"),
            [MessageUpdated(message=m) for m in rewritten],
        )
        return reopened
