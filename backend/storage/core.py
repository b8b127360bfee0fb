"""Storage initialization, path helpers, and JSON file access."""

import json
import os
from pathlib import Path
from typing import Any

_data_dir: Path | None = None


def init_storage(data_dir: Path) -> None:
    global _data_dir
    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    contents_dir().mkdir(exist_ok=True)


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def contents_dir() -> Path:
    return data_dir() / "contents"


def collection_path(name: str) -> Path:
    return data_dir() / f"{name}.json"


def read_json(path: Path, default: Any) -> Any:
    """Load a JSON file. Returns `default` if missing."""
    if not path.is_file():
        return default
    return json.loads(path.read_text())


def write_json(path: Path, value: Any) -> None:
    """Write a JSON file atomically (temp file + rename)."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(value, indent=2))
    os.replace(tmp, path)
