"""Daily archive storage.

Archives are stored as {date, summary, data: {messages, tasks, roomStates},
createdAt}, one per date, ordered by date.
"""

from datetime import datetime, timezone
from typing import Any

from .core import collection_path, read_json, write_json


def list_archives() -> list[dict[str, Any]]:
    return read_json(collection_path("archives"), [])


def save_archives(archives: list[dict[str, Any]]) -> None:
    write_json(collection_path("archives"), sorted(archives, key=lambda a: a["date"]))


def add_archive(date: str, summary: str, data: dict[str, Any]) -> dict[str, Any]:
    """Store the archive for `date`, replacing any earlier one for that date."""
    archive = {
        "date": date,
        "summary": summary,
        "data": data,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    archives = [a for a in list_archives() if a["date"] != date]
    archives.append(archive)
    save_archives(archives)
    return archive
