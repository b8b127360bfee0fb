"""Storage coordinator — one read/write API over a ranked list of tiers.

Reads walk the tiers in priority order and return the first value that
validates; that value is then written into every lower reachable tier
(warm-through). Writes go to every reachable tier concurrently and succeed
when at least one tier accepts them.

Warm-through takes the collection's write lock and is dropped when a write
committed while the read was in flight, so a slow read never lands on top of
newer data. Tiers already known to hold the value are not rewritten.

Reachability is probed once and cached for the session. The periodic
health_check() re-probes only tiers currently believed reachable, so an
outage is noticed without hammering a backend that is already down; a tier
marked unreachable comes back only through retry().

Tier failures never reach the caller. They are logged, counted per tier,
and reported through status().
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

from pydantic import TypeAdapter, ValidationError

from housekeeping.models import Archive, ChatMessage, Room, Task, WireModel
from housekeeping.rooms import generate_catalog, is_valid_catalog
from housekeeping.stores.base import Change, Collection, CollectionStore, StoreError

logger = logging.getLogger(__name__)

TierOutcome = Literal["ok", "failed", "skipped"]

_ADAPTERS: dict[str, TypeAdapter] = {
    "rooms": TypeAdapter(list[Room]),
    "tasks": TypeAdapter(list[Task]),
    "messages": TypeAdapter(list[ChatMessage]),
    "archives": TypeAdapter(list[Archive]),
}


@dataclass
class ReadResult:
    collection: Collection
    value: list[Any]
    source: str | None  # tier name, or None when the default was generated


@dataclass
class WriteResult:
    collection: Collection
    ok: bool
    outcomes: dict[str, TierOutcome]
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class BackendHealth:
    reachable: bool | None = None  # None until first probed
    consecutive_failures: int = 0
    last_error: str | None = None
    degraded: bool = False


def default_value(collection: Collection) -> list[Any]:
    return generate_catalog() if collection == "rooms" else []


def validate_collection(collection: Collection, raw: Any) -> list[Any] | None:
    """Parse a tier's raw value into models; None when it is malformed."""
    try:
        items = _ADAPTERS[collection].validate_python(raw)
    except ValidationError as e:
        logger.warning("Discarding malformed %s value: %d validation errors", collection, e.error_count())
        return None
    if collection == "rooms" and not is_valid_catalog(items):
        logger.warning("Discarding rooms value that is not the full room catalog")
        return None
    return items


def is_usable(collection: Collection, raw: Any) -> bool:
    return validate_collection(collection, raw) is not None


def to_wire(items: Sequence[WireModel]) -> list[dict]:
    return [item.to_wire() for item in items]


class StorageCoordinator:
    """Fan reads and writes out over tiers given in priority order."""

    def __init__(
        self,
        tiers: Sequence[CollectionStore],
        timeout: float = 6.0,
        failure_threshold: int = 3,
    ) -> None:
        self._tiers = list(tiers)
        self._timeout = timeout
        self._failure_threshold = failure_threshold
        self._health: dict[str, BackendHealth] = {t.name: BackendHealth() for t in self._tiers}
        self._locks: dict[str, asyncio.Lock] = {}
        # committed writes per collection
        self._commits: dict[str, int] = {}
        # last wire value each tier is known to hold, keyed by (tier, collection)
        self._known: dict[tuple[str, str], list[dict]] = {}

    @property
    def tier_names(self) -> list[str]:
        return [t.name for t in self._tiers]

    def _lock(self, collection: Collection) -> asyncio.Lock:
        if collection not in self._locks:
            self._locks[collection] = asyncio.Lock()
        return self._locks[collection]

    # -- bookkeeping ----------------------------------------------------------

    def _record_success(self, name: str) -> None:
        health = self._health[name]
        health.consecutive_failures = 0
        health.last_error = None
        health.degraded = False

    def _record_failure(self, name: str, error: BaseException) -> None:
        health = self._health[name]
        health.consecutive_failures += 1
        health.last_error = str(error) or type(error).__name__
        if health.consecutive_failures >= self._failure_threshold and not health.degraded:
            health.degraded = True
            logger.warning(
                "Tier %s degraded after %d consecutive failures", name, health.consecutive_failures
            )

    async def _call(self, coro):
        try:
            return await asyncio.wait_for(coro, self._timeout)
        except asyncio.TimeoutError as e:
            raise StoreError(f"timed out after {self._timeout}s") from e

    # -- reachability ----------------------------------------------------------

    async def probe(self, name: str) -> bool:
        """Return cached reachability, probing the tier the first time."""
        health = self._health[name]
        if health.reachable is not None:
            return health.reachable
        return await self._probe_now(name)

    async def _probe_now(self, name: str) -> bool:
        tier = next(t for t in self._tiers if t.name == name)
        try:
            reachable = bool(await asyncio.wait_for(tier.probe(), self._timeout))
        except asyncio.TimeoutError:
            reachable = False
        health = self._health[name]
        if health.reachable is not None and health.reachable != reachable:
            logger.info("Tier %s is now %s", name, "reachable" if reachable else "unreachable")
        health.reachable = reachable
        if reachable:
            self._record_success(name)
        else:
            self._record_failure(name, StoreError("probe failed"))
        return reachable

    async def probe_all(self) -> dict[str, bool]:
        results = await asyncio.gather(*(self.probe(n) for n in self.tier_names))
        return dict(zip(self.tier_names, results))

    async def retry(self) -> dict[str, BackendHealth]:
        """Forget cached reachability and probe every tier again."""
        for health in self._health.values():
            health.reachable = None
        await asyncio.gather(*(self._probe_now(n) for n in self.tier_names))
        return self.status()

    async def health_check(self) -> dict[str, BackendHealth]:
        names = [n for n, h in self._health.items() if h.reachable]
        await asyncio.gather(*(self._probe_now(n) for n in names))
        return self.status()

    def status(self) -> dict[str, BackendHealth]:
        return {
            name: BackendHealth(h.reachable, h.consecutive_failures, h.last_error, h.degraded)
            for name, h in self._health.items()
        }

    # -- read ------------------------------------------------------------------

    async def read(self, collection: Collection) -> ReadResult:
        started = self._commits.get(collection, 0)
        for index, tier in enumerate(self._tiers):
            if not await self.probe(tier.name):
                logger.debug("Skipping unreachable tier %s for %s", tier.name, collection)
                continue
            try:
                raw = await self._call(tier.read(collection))
            except StoreError as e:
                logger.warning("Reading %s from %s failed: %s", collection, tier.name, e)
                self._record_failure(tier.name, e)
                continue
            self._record_success(tier.name)
            if raw is None:
                logger.debug("Tier %s holds no %s", tier.name, collection)
                self._known.pop((tier.name, collection), None)
                continue
            items = validate_collection(collection, raw)
            if items is None:
                self._known.pop((tier.name, collection), None)
                continue
            logger.debug("Read %s from %s (%d items)", collection, tier.name, len(items))
            wire = to_wire(items)
            if self._commits.get(collection, 0) == started:
                self._known[(tier.name, collection)] = wire
            await self._warm(collection, wire, self._tiers[index + 1:], started)
            return ReadResult(collection, items, tier.name)

        logger.info("No tier holds %s, using the default value", collection)
        return ReadResult(collection, default_value(collection), None)

    async def _warm(
        self,
        collection: Collection,
        wire: list[dict],
        lower: Sequence[CollectionStore],
        started: int,
    ) -> None:
        async with self._lock(collection):
            if self._commits.get(collection, 0) != started:
                logger.debug("Not warming %s: written while the read was in flight", collection)
                return
            targets = [
                t for t in lower
                if self._health[t.name].reachable and self._known.get((t.name, collection)) != wire
            ]
            if not targets:
                return
            results = await asyncio.gather(
                *(self._call(t.write(collection, wire)) for t in targets), return_exceptions=True
            )
            for tier, result in zip(targets, results):
                if isinstance(result, BaseException):
                    logger.warning("Warm-through of %s into %s failed: %s", collection, tier.name, result)
                    self._record_failure(tier.name, result)
                    self._known.pop((tier.name, collection), None)
                else:
                    logger.debug("Warmed %s into %s", collection, tier.name)
                    self._known[(tier.name, collection)] = wire

    # -- write -----------------------------------------------------------------

    async def write(
        self,
        collection: Collection,
        items: Sequence[WireModel],
        changes: Sequence[Change] = (),
    ) -> WriteResult:
        """Write the whole collection to every reachable tier at once.

        `changes` lists the entity-level edits that produced `items`; tiers
        that can patch single entities use them, the others replace the
        whole collection. Writes to one collection are serialized.
        """
        wire = to_wire(items)
        async with self._lock(collection):
            reachable = await self.probe_all()
            targets = [t for t in self._tiers if reachable[t.name]]
            results = await asyncio.gather(
                *(self._call(t.write(collection, wire, changes)) for t in targets),
                return_exceptions=True,
            )
            self._commits[collection] = self._commits.get(collection, 0) + 1

        outcomes: dict[str, TierOutcome] = {name: "skipped" for name in self.tier_names}
        errors: dict[str, str] = {}
        for tier, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("Writing %s to %s failed: %s", collection, tier.name, result)
                self._record_failure(tier.name, result)
                self._known.pop((tier.name, collection), None)
                outcomes[tier.name] = "failed"
                errors[tier.name] = str(result) or type(result).__name__
            else:
                self._record_success(tier.name)
                self._known[(tier.name, collection)] = wire
                outcomes[tier.name] = "ok"

        ok = any(o == "ok" for o in outcomes.values())
        if not ok:
            logger.error("Write of %s failed on every tier", collection)
        return WriteResult(collection, ok, outcomes, errors)
