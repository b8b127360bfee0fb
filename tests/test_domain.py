"""Tests for housekeeping.domain: optimistic updates and sync state."""

import asyncio
from datetime import timedelta

import pytest

from housekeeping.coordinator import StorageCoordinator
from housekeeping.domain import DomainStore, UnknownRoom, UnknownTask
from housekeeping.models import Task
from housekeeping.reset import Snapshot
from housekeeping.stores.base import (
    GuestsChanged,
    MessageAdded,
    MessageUpdated,
    RoomStatusChanged,
    TaskAdded,
    TaskCompleted,
)


@pytest.fixture
async def domain(coordinator, clock) -> DomainStore:
    store = DomainStore(coordinator, clock=clock)
    await store.load()
    return store


def _failing_domain(fake_tier, clock) -> tuple[DomainStore, object]:
    local = fake_tier("local")
    return DomainStore(StorageCoordinator([local]), clock=clock), local


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoad:
    async def test_empty_storage_persists_catalog(self, tiers, coordinator, clock) -> None:
        store = DomainStore(coordinator, clock=clock)
        sources = await store.load()
        assert sources["rooms"] is None
        assert len(store.rooms) == 40
        assert all(len(t.data["rooms"]) == 40 for t in tiers)

    async def test_load_reports_sources(self, fake_tier, clock) -> None:
        api = fake_tier("api", data={"tasks": []})
        local = fake_tier("local")
        store = DomainStore(StorageCoordinator([api, local]), clock=clock)
        sources = await store.load()
        assert sources["tasks"] == "api"
        assert sources["messages"] is None

    async def test_rooms_in_catalog_order(self, domain: DomainStore) -> None:
        numbers = [r.number for r in domain.rooms]
        assert numbers[0] == "101" and numbers[-1] == "508"


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

class TestRooms:
    async def test_status_update(self, domain: DomainStore, tiers, now) -> None:
        result = await domain.update_room_status("101", "clean")
        assert result.ok
        room = domain.room("101")
        assert room.status == "clean"
        assert room.last_cleaned == now
        assert room.last_updated == now
        assert domain.sync_state("room", "101") == "synced"
        assert tiers[0].writes[-1][2] == [RoomStatusChanged(number="101", status="clean")]

    async def test_non_clean_status_keeps_last_cleaned(self, domain: DomainStore, now) -> None:
        await domain.update_room_status("101", "clean")
        await domain.update_room_status("101", "dirty")
        assert domain.room("101").last_cleaned == now

    async def test_unknown_room(self, domain: DomainStore) -> None:
        with pytest.raises(UnknownRoom):
            await domain.update_room_status("999", "clean")

    async def test_guest_update(self, domain: DomainStore) -> None:
        await domain.update_guest_status("204", True)
        assert domain.room("204").has_guests is True

    async def test_bulk_guests_single_write(self, domain: DomainStore, tiers) -> None:
        before = len(tiers[0].writes)
        await domain.bulk_update_guests({"101": True, "102": True, "103": False})
        assert len(tiers[0].writes) == before + 1
        changes = tiers[0].writes[-1][2]
        assert [c.number for c in changes] == ["101", "102", "103"]
        assert all(isinstance(c, GuestsChanged) for c in changes)

    async def test_bulk_status_single_write(self, domain: DomainStore, tiers, now) -> None:
        before = len(tiers[0].writes)
        await domain.bulk_update_status(["101", "102", "103"], "clean")
        assert len(tiers[0].writes) == before + 1
        changes = tiers[0].writes[-1][2]
        assert changes == [RoomStatusChanged(number=n, status="clean") for n in ("101", "102", "103")]
        assert all(domain.room(n).last_cleaned == now for n in ("101", "102", "103"))
        assert domain.room("104").status == "default"

    async def test_bulk_status_validates_before_mutating(self, domain: DomainStore) -> None:
        with pytest.raises(UnknownRoom):
            await domain.bulk_update_status(["101", "999"], "dirty")
        assert domain.room("101").status == "default"

    async def test_bulk_guests_validates_before_mutating(self, domain: DomainStore) -> None:
        with pytest.raises(UnknownRoom):
            await domain.bulk_update_guests({"101": True, "999": True})
        assert domain.room("101").has_guests is False

    async def test_room_views_derive_overdue(self, domain: DomainStore, now) -> None:
        await domain.update_room_status("101", "clean")
        views = domain.room_views(now + timedelta(hours=25))
        view = next(v for v in views if v.room.number == "101")
        assert view.overdue
        assert view.display_status == "overdue"
        # the stored status is untouched
        assert domain.room("101").status == "clean"


# ---------------------------------------------------------------------------
# Optimistic updates
# ---------------------------------------------------------------------------

class TestOptimistic:
    async def test_failed_write_keeps_local_change(self, fake_tier, clock) -> None:
        store, local = _failing_domain(fake_tier, clock)
        await store.load()
        local.fail_writes = True
        result = await store.update_room_status("101", "clean")
        assert not result.ok
        assert store.room("101").status == "clean"
        assert store.sync_state("room", "101") == "diverged"
        assert store.last_error.startswith("rooms not saved")

    async def test_refresh_replaces_diverged(self, fake_tier, clock) -> None:
        store, local = _failing_domain(fake_tier, clock)
        await store.load()
        local.fail_writes = True
        await store.update_room_status("101", "clean")
        local.fail_writes = False
        await store.refresh()
        assert store.room("101").status == "default"
        assert store.sync_state("room", "101") == "synced"

    async def test_successful_write_clears_error(self, fake_tier, clock) -> None:
        store, local = _failing_domain(fake_tier, clock)
        await store.load()
        local.fail_writes = True
        await store.update_room_status("101", "clean")
        local.fail_writes = False
        await store.update_room_status("102", "clean")
        assert store.last_error is None

    async def test_refresh_takes_remote_changes(self, domain: DomainStore, tiers) -> None:
        tiers[0].data["rooms"][0]["status"] = "checkout"
        await domain.refresh()
        assert domain.room("101").status == "checkout"

    async def test_refresh_keeps_pending_task(self, domain: DomainStore, tiers) -> None:
        tiers[0].data["tasks"] = []
        task = Task(room_number="101", message="Towels", created_by="HK1")
        domain._tasks.append(task)
        domain._sync[("task", task.id)] = "pending"
        await domain.refresh()
        assert [t.id for t in domain.tasks] == [task.id]

    async def test_refresh_keeps_change_made_while_reading(self, fake_tier, clock, hold_reads) -> None:
        files, local = fake_tier("files"), fake_tier("local")
        store = DomainStore(StorageCoordinator([files, local]), clock=clock)
        await store.load()
        reading, release = hold_reads(files, "rooms")

        refresh = asyncio.create_task(store.refresh())
        await reading.wait()
        await store.update_room_status("101", "dirty")
        release.set()
        await refresh

        assert store.room("101").status == "dirty"
        for tier in (files, local):
            room = next(r for r in tier.data["rooms"] if r["number"] == "101")
            assert room["status"] == "dirty"

    async def test_refresh_skips_collection_replaced_while_reading(
        self, fake_tier, clock, housekeeper, hold_reads
    ) -> None:
        files, local = fake_tier("files"), fake_tier("local")
        store = DomainStore(StorageCoordinator([files, local]), clock=clock)
        await store.load()
        await store.send_message("old", housekeeper)
        reading, release = hold_reads(files, "messages")

        refresh = asyncio.create_task(store.refresh())
        await reading.wait()
        await store.replace_all(Snapshot(rooms=store.rooms))
        release.set()
        await refresh

        assert store.messages == []

    async def test_refresh_skips_collections_without_data(self, domain: DomainStore, tiers) -> None:
        for tier in tiers:
            tier.data.pop("archives", None)
        await domain.refresh()
        assert domain.archives == []


# ---------------------------------------------------------------------------
# Tasks and messages
# ---------------------------------------------------------------------------

class TestTasks:
    async def test_add_task_posts_linked_message(self, domain: DomainStore, housekeeper, tiers, now) -> None:
        task = await domain.add_task("101", "Extra towels", housekeeper)
        assert domain.tasks == [task]
        assert task.created_by == "HK1" and task.timestamp == now
        message = domain.messages[-1]
        assert message.type == "task"
        assert message.content == "Room 101: Extra towels"
        assert message.task == task
        assert isinstance(tiers[0].writes[-2][2][0], TaskAdded)
        assert isinstance(tiers[0].writes[-1][2][-1], MessageAdded)

    async def test_add_task_unknown_room(self, domain: DomainStore, housekeeper) -> None:
        with pytest.raises(UnknownRoom):
            await domain.add_task("999", "x", housekeeper)
        assert domain.tasks == []

    async def test_complete_rewrites_linked_message(self, domain: DomainStore, housekeeper, admin) -> None:
        task = await domain.add_task("203", "Fix lamp", housekeeper)
        done = await domain.complete_task(task.id, admin)
        assert done.completed and done.completed_by == "Admin"
        linked = next(m for m in domain.messages if m.task is not None)
        assert linked.task.completed
        assert domain.messages[-1].content == "Task completed for Room 203"
        assert domain.messages[-1].sender_type == "admin"

    async def test_complete_is_exactly_once(self, domain: DomainStore, housekeeper, tiers) -> None:
        task = await domain.add_task("101", "x", housekeeper)
        await domain.complete_task(task.id, housekeeper)
        writes = len(tiers[0].writes)
        messages = len(domain.messages)
        again = await domain.complete_task(task.id, housekeeper)
        assert again.completed_by == "HK1"
        assert len(tiers[0].writes) == writes
        assert len(domain.messages) == messages

    async def test_complete_sends_entity_changes(self, domain: DomainStore, housekeeper, tiers) -> None:
        task = await domain.add_task("101", "x", housekeeper)
        await domain.complete_task(task.id, housekeeper)
        task_changes = tiers[0].writes[-2][2]
        message_changes = tiers[0].writes[-1][2]
        assert task_changes == [TaskCompleted(task_id=task.id, completed_by="HK1")]
        assert isinstance(message_changes[0], MessageUpdated)
        assert isinstance(message_changes[-1], MessageAdded)

    async def test_reopen(self, domain: DomainStore, housekeeper) -> None:
        task = await domain.add_task("101", "x", housekeeper)
        await domain.complete_task(task.id, housekeeper)
        reopened = await domain.reopen_task(task.id, housekeeper)
        assert not reopened.completed
        assert reopened.completed_by is None and reopened.completed_at is None
        assert domain.messages[-1].content == "Task reopened for Room 101"

    async def test_reopen_open_task_is_noop(self, domain: DomainStore, housekeeper) -> None:
        task = await domain.add_task("101", "x", housekeeper)
        count = len(domain.messages)
        await domain.reopen_task(task.id, housekeeper)
        assert len(domain.messages) == count

    async def test_unknown_task(self, domain: DomainStore, housekeeper) -> None:
        with pytest.raises(UnknownTask):
            await domain.complete_task("nope", housekeeper)

    async def test_send_message(self, domain: DomainStore, housekeeper, now) -> None:
        message = await domain.send_message("Floor 3 done", housekeeper)
        assert domain.messages == [message]
        assert message.sender == "HK1"
        assert message.timestamp == now
        assert domain.sync_state("message", message.id) == "synced"
