"""Export and import of the full dataset as one JSON document.

    {
      "rooms":    [Room, ...],
      "tasks":    [Task, ...],
      "messages": [ChatMessage, ...],
      "archives": [Archive, ...],
      "exported_at": "2026-01-01T08:00:00+00:00"
    }

Entities use their wire form. Import overwrites each top-level collection
present in the document wholesale; absent keys are left untouched. The
whole document is validated before anything is written.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

from housekeeping.coordinator import StorageCoordinator, WriteResult, to_wire, validate_collection
from housekeeping.models import utcnow
from housekeeping.stores.base import COLLECTIONS, Collection

logger = logging.getLogger(__name__)


class TransferError(ValueError):
    pass


@dataclass
class ImportReport:
    results: dict[Collection, WriteResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return any(r.ok for r in self.results.values())

    @property
    def imported(self) -> list[Collection]:
        return [c for c, r in self.results.items() if r.ok]


async def export_data(coordinator: StorageCoordinator, now: datetime | None = None) -> str:
    reads = await asyncio.gather(*(coordinator.read(c) for c in COLLECTIONS))
    document: dict = {r.collection: to_wire(r.value) for r in reads}
    document["exported_at"] = (now or utcnow()).isoformat()
    return json.dumps(document, indent=2)


async def import_data(coordinator: StorageCoordinator, text: str) -> ImportReport:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise TransferError(f"Import is not valid JSON: {e.msg}") from e
    if not isinstance(document, dict):
        raise TransferError("Import must be a JSON object")

    parsed = {}
    for collection in COLLECTIONS:
        if collection not in document:
            continue
        items = validate_collection(collection, document[collection])
        if items is None:
            raise TransferError(f"Import has an invalid {collection} collection")
        parsed[collection] = items
    if not parsed:
        raise TransferError("Import holds none of: " + ", ".join(COLLECTIONS))

    report = ImportReport()
    for collection, items in parsed.items():
        report.results[collection] = await coordinator.write(collection, items)
    logger.info("Imported %s", ", ".join(report.imported) or "nothing")
    return report
