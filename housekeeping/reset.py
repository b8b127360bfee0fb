"""Daily reset and archival.

Once per calendar day the live data is archived under the previous day's
date and the new day starts from a clean slate:

  - every room goes back to "default" except "checkout" rooms, which still
    need their turnover
  - incomplete tasks are carried over unchanged, completed ones are cleared
  - messages are cleared and replaced by one system notice
  - archives older than the retention window are pruned

The transition itself (daily_reset) is a pure function so it can be tested
in isolation. It is idempotent in effect: an automatic run that finds the
day already archived changes nothing, which covers several clients racing
over the same day boundary. A manual run merges into the existing archive,
so there is never more than one archive per date, and changes nothing when
the day has seen no activity since the last reset.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Callable, Iterable, TypeVar

from housekeeping.config import Settings
from housekeeping.models import Archive, ChatMessage, Room, Task, User, utcnow
from housekeeping.rooms import is_valid_catalog
from housekeeping.stores.base import StoreError
from housekeeping.stores.local import KeyValueCache

if TYPE_CHECKING:
    from housekeeping.domain import DomainStore

logger = logging.getLogger(__name__)

MARKER_KEY = "lastResetDate"
SYSTEM_SENDER = "System"
_KEEPS_STATUS = frozenset({"checkout", "default"})

T = TypeVar("T", Task, ChatMessage)


class PermissionDenied(Exception):
    """Admin action attempted without an admin session or the right confirmation."""


class ResetFailed(Exception):
    """An admin reset or undo could not be stored."""


@dataclass
class Snapshot:
    rooms: list[Room] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    messages: list[ChatMessage] = field(default_factory=list)
    archives: list[Archive] = field(default_factory=list)


@dataclass
class ResetOutcome:
    snapshot: Snapshot
    archive: Archive | None
    carried_over: list[Task]
    performed: bool


# ---------------------------------------------------------------------------
# Pure transition
# ---------------------------------------------------------------------------

def archive_key(today: date) -> str:
    return (today - timedelta(days=1)).isoformat()


def summarize(rooms: Iterable[Room], tasks: Iterable[Task]) -> str:
    cleaned = sum(1 for r in rooms if r.status == "clean")
    completed = sum(1 for t in tasks if t.completed)
    return f"Day completed: {cleaned} rooms cleaned, {completed} tasks completed"


def _archive_day(archive: Archive) -> date | None:
    try:
        return date.fromisoformat(archive.date)
    except ValueError:
        return None


def prune_archives(archives: Iterable[Archive], today: date, retention_days: int = 30) -> list[Archive]:
    """Drop archives older than the retention window, oldest first in the result."""
    cutoff = today - timedelta(days=retention_days)
    kept = []
    for archive in archives:
        day = _archive_day(archive)
        if day is not None and day < cutoff:
            logger.debug("Pruning archive %s", archive.date)
            continue
        kept.append(archive)
    return sorted(kept, key=lambda a: a.date)


def _union(first: Iterable[T], second: Iterable[T]) -> list[T]:
    by_id: dict[str, T] = {}
    for item in (*first, *second):
        by_id[item.id] = item
    return list(by_id.values())


def is_fresh_day(snapshot: Snapshot) -> bool:
    """Nothing has happened since the last reset: only system notices, no
    completed tasks, and every room still in a status a reset leaves behind."""
    return (
        all(m.sender == SYSTEM_SENDER for m in snapshot.messages)
        and not any(t.completed for t in snapshot.tasks)
        and all(r.status in _KEEPS_STATUS for r in snapshot.rooms)
    )


def daily_reset(
    snapshot: Snapshot,
    today: date,
    now: datetime,
    *,
    force: bool = False,
    retention_days: int = 30,
) -> ResetOutcome:
    key = archive_key(today)
    existing = next((a for a in snapshot.archives if a.date == key), None)
    if existing is not None and (not force or is_fresh_day(snapshot)):
        return ResetOutcome(snapshot=snapshot, archive=None, carried_over=[], performed=False)

    if existing is None:
        messages, tasks, created_at = snapshot.messages, snapshot.tasks, now
    else:
        messages = _union(existing.messages, snapshot.messages)
        tasks = _union(existing.tasks, snapshot.tasks)
        created_at = existing.created_at
    summary = summarize(snapshot.rooms, tasks)
    archive = Archive(
        date=key,
        summary=summary,
        messages=list(messages),
        tasks=list(tasks),
        room_states=list(snapshot.rooms),
        created_at=created_at,
    )
    archives = prune_archives(
        [a for a in snapshot.archives if a.date != key] + [archive], today, retention_days
    )

    rooms = [
        r if r.status in _KEEPS_STATUS else r.model_copy(update={"status": "default", "last_updated": now})
        for r in snapshot.rooms
    ]
    carried = [t for t in snapshot.tasks if not t.completed]
    headline = "Manual reset completed" if force else "New day started"
    notice = ChatMessage(
        sender=SYSTEM_SENDER,
        content=f"{headline}! {summary}. {len(carried)} tasks carried over.",
        timestamp=now,
    )
    return ResetOutcome(
        snapshot=Snapshot(rooms=rooms, tasks=carried, messages=[notice], archives=archives),
        archive=archive,
        carried_over=carried,
        performed=True,
    )


def undo_reset(snapshot: Snapshot) -> Snapshot | None:
    """Restore the newest archive as live data and drop it from the archives."""
    if not snapshot.archives:
        return None
    newest = max(snapshot.archives, key=lambda a: a.date)
    rooms = newest.room_states if is_valid_catalog(newest.room_states) else snapshot.rooms
    return Snapshot(
        rooms=list(rooms),
        tasks=list(newest.tasks),
        messages=list(newest.messages),
        archives=[a for a in snapshot.archives if a is not newest],
    )


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class DailyReset:
    """Runs the transition against live state and tracks the lastResetDate marker."""

    def __init__(
        self,
        domain: DomainStore,
        cache: KeyValueCache,
        clock: Callable[[], datetime] = utcnow,
        settings: Settings | None = None,
    ) -> None:
        self._domain = domain
        self._cache = cache
        self._clock = clock
        self._settings = settings or Settings()

    def today(self) -> date:
        return self._clock().astimezone(self._settings.tz).date()

    def last_reset_date(self) -> str | None:
        value = self._cache.get(MARKER_KEY)
        return value if isinstance(value, str) else None

    def mark_done(self, today: date) -> None:
        try:
            self._cache.set(MARKER_KEY, today.isoformat())
        except StoreError as e:
            logger.warning("Could not store the reset marker: %s", e)

    async def check(self) -> ResetOutcome | None:
        """Run the reset when the marker is not today. Called at start-up and every minute."""
        if self.last_reset_date() == self.today().isoformat():
            return None
        # another client may already have reset the day
        await self._domain.refresh()
        return await self.run()

    async def run(self, force: bool = False) -> ResetOutcome:
        today = self.today()
        outcome = daily_reset(
            self._domain.snapshot(),
            today,
            self._clock(),
            force=force,
            retention_days=self._settings.archive_retention_days,
        )
        if not outcome.performed:
            logger.info("Archive for %s already exists, nothing to reset", archive_key(today))
            self.mark_done(today)
            return outcome

        results = await self._domain.replace_all(outcome.snapshot)
        failed = sorted(c for c, r in results.items() if not r.ok)
        if failed and force:
            raise ResetFailed(f"Reset could not store: {', '.join(failed)}")
        if failed:
            logger.error("Daily reset kept locally only, not stored: %s", ", ".join(failed))
        logger.info(
            "Daily reset performed: archived %s, %d tasks carried over",
            outcome.archive.date if outcome.archive else "-",
            len(outcome.carried_over),
        )
        self.mark_done(today)
        return outcome

    def _authorize(self, user: User | None, confirmation: str) -> None:
        if user is None or not user.is_admin:
            raise PermissionDenied("An admin session is required")
        secret = self._settings.admin_secret
        if not secret:
            raise PermissionDenied("No admin secret is configured")
        if not hmac.compare_digest(confirmation.encode(), secret.encode()):
            raise PermissionDenied("Confirmation does not match")

    async def manual_reset(self, user: User | None, confirmation: str) -> ResetOutcome:
        """Admin-triggered reset; rebuilds all state from storage afterwards."""
        self._authorize(user, confirmation)
        outcome = await self.run(force=True)
        await self._domain.load()
        return outcome

    async def undo_last_reset(self, user: User | None, confirmation: str) -> Snapshot:
        self._authorize(user, confirmation)
        restored = undo_reset(self._domain.snapshot())
        if restored is None:
            raise ResetFailed("There is no archive to restore")
        results = await self._domain.replace_all(restored)
        failed = sorted(c for c, r in results.items() if not r.ok)
        if failed:
            raise ResetFailed(f"Undo could not store: {', '.join(failed)}")
        logger.info("Undid the last reset")
        await self._domain.load()
        return restored
