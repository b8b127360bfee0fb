"""Create demo data for development/testing."""

from datetime import datetime, timedelta, timezone

from backend import storage
from housekeeping.models import ChatMessage, Task
from housekeeping.reset import daily_reset, Snapshot
from housekeeping.rooms import generate_catalog
from housekeeping.stores.api import nest_archive

# (room number, status, has guests)
DEMO_ROOMS = [
    ("101", "clean", False),
    ("102", "dirty", False),
    ("103", "checkout", True),
    ("104", "checkout", False),
    ("201", "dirty", True),
    ("305", "closed", False),
]

DEMO_TASKS = [
    ("102", "Replace broken lamp", "Admin"),
    ("201", "Extra towels requested", "HK2"),
    ("305", "Check AC unit before reopening", "Admin"),
]


def create_demo_data() -> None:
    """Overwrite all collections with a small, realistic demo day."""
    now = datetime.now(timezone.utc)
    yesterday = now - timedelta(days=1)

    rooms = generate_catalog(now)
    by_number = {r.number: r for r in rooms}
    for number, status, guests in DEMO_ROOMS:
        cleaned = now - timedelta(hours=2) if status == "clean" else None
        by_number[number] = by_number[number].model_copy(
            update={"status": status, "has_guests": guests, "last_cleaned": cleaned}
        )
    # cleaned 30 hours ago: shows up as overdue
    by_number["402"] = by_number["402"].model_copy(
        update={"status": "clean", "last_cleaned": now - timedelta(hours=30)}
    )
    rooms = [by_number[r.number] for r in rooms]

    tasks = [Task(room_number=n, message=m, created_by=who, timestamp=now) for n, m, who in DEMO_TASKS]
    tasks[0] = tasks[0].complete("HK1", now)
    messages = [
        ChatMessage(sender="Admin", sender_type="admin", content="Good morning team!", timestamp=now),
        *(
            ChatMessage(
                type="task",
                sender=t.created_by,
                sender_type="admin" if t.created_by == "Admin" else "housekeeper",
                content=f"Room {t.room_number}: {t.message}",
                timestamp=now,
                task=t,
            )
            for t in tasks
        ),
    ]

    # one archived day so history browsing has something to show
    previous = daily_reset(Snapshot(rooms=rooms, tasks=tasks, messages=messages), now.date(), yesterday)

    storage.save_rooms([r.to_wire() for r in rooms])
    storage.save_tasks([t.to_wire() for t in tasks])
    storage.save_messages([m.to_wire() for m in messages])
    storage.save_archives([nest_archive(a.to_wire()) for a in previous.snapshot.archives])

    print(f"Created demo data: {len(DEMO_ROOMS) + 1} rooms in use, {len(tasks)} tasks, "
          f"{len(messages)} messages, 1 archive.")
