"""Versioned blob storage for the /contents endpoints.

Each blob is a file under data/contents/. Its version token is the git blob
sha1 of the raw bytes, so any change to the content changes the token.

Writes follow compare-and-swap rules:
  - creating a blob needs no sha
  - replacing a blob needs the current sha (BlobShaRequired otherwise)
  - a sha that no longer matches raises BlobConflict
"""

import hashlib
import os
from pathlib import Path, PurePosixPath

from .core import contents_dir


class BlobError(Exception):
    pass


class InvalidBlobPath(BlobError):
    pass


class BlobShaRequired(BlobError):
    pass


class BlobConflict(BlobError):
    pass


def blob_sha(content: bytes) -> str:
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


def _resolve(path: str) -> Path:
    parts = PurePosixPath(path).parts
    if not parts or any(p in ("..", ".") or p.startswith("/") for p in parts):
        raise InvalidBlobPath(f"Invalid path: {path!r}")
    return contents_dir().joinpath(*parts)


def is_directory(path: str) -> bool:
    if not path.strip("/"):
        return True
    return _resolve(path).is_dir()


def list_blobs(path: str) -> list[dict[str, str]] | None:
    """Directory listing as [{name, path, sha}], or None if the directory is missing."""
    base = contents_dir() if not path.strip("/") else _resolve(path)
    if not base.is_dir():
        return None
    entries = []
    for child in sorted(base.iterdir()):
        if child.is_file() and not child.name.endswith(".tmp"):
            rel = child.relative_to(contents_dir()).as_posix()
            entries.append({"name": child.name, "path": rel, "sha": blob_sha(child.read_bytes())})
    return entries


def get_blob(path: str) -> tuple[bytes, str] | None:
    """Return (content, sha), or None if the blob does not exist."""
    target = _resolve(path)
    if not target.is_file():
        return None
    content = target.read_bytes()
    return content, blob_sha(content)


def put_blob(path: str, content: bytes, sha: str | None) -> tuple[str, bool]:
    """Create or replace a blob. Returns (new sha, created)."""
    target = _resolve(path)
    existing = get_blob(path)
    if existing is not None:
        if not sha:
            raise BlobShaRequired(f"{path} exists; a sha is required to replace it")
        if sha != existing[1]:
            raise BlobConflict(f"{path} does not match {sha}")
    elif sha:
        raise BlobConflict(f"{path} does not exist; sha {sha} cannot match")
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    tmp.write_bytes(content)
    os.replace(tmp, target)
    return blob_sha(content), existing is None
