"""Versioned blob endpoints in the shape of the GitHub contents API.

Mounted at /contents, outside /api, so a client points its file store at
"http://host:port/contents/<dir>".
"""

import base64
import binascii

from fastapi import APIRouter, HTTPException, Response

from backend import storage

from .models import ContentBody

router = APIRouter()


def _entry(path: str, sha: str) -> dict:
    return {"name": path.rsplit("/", 1)[-1], "path": path, "sha": sha}


@router.get("/contents/{path:path}")
async def get_contents(path: str):
    """A blob as base64 content plus sha, or a directory listing."""
    try:
        if storage.is_directory(path):
            listing = storage.list_blobs(path)
            if listing is None:
                raise HTTPException(404, "Not Found")
            return listing
        blob = storage.get_blob(path)
    except storage.InvalidBlobPath as e:
        raise HTTPException(400, str(e))
    if blob is None:
        raise HTTPException(404, "Not Found")
    content, sha = blob
    return {
        **_entry(path, sha),
        "size": len(content),
        "encoding": "base64",
        "content": base64.encodebytes(content).decode(),
    }


@router.put("/contents/{path:path}")
async def put_contents(path: str, body: ContentBody, response: Response):
    """Create or replace a blob. Stale sha → 409, missing sha on an existing blob → 422."""
    try:
        content = base64.b64decode(body.content.replace("\n", ""), validate=True)
    except binascii.Error:
        raise HTTPException(400, "Content is not valid base64")
    try:
        sha, created = storage.put_blob(path, content, body.sha)
    except storage.InvalidBlobPath as e:
        raise HTTPException(400, str(e))
    except storage.BlobShaRequired as e:
        raise HTTPException(422, str(e))
    except storage.BlobConflict as e:
        raise HTTPException(409, str(e))
    response.status_code = 201 if created else 200
    return {"content": _entry(path, sha), "commit": {"message": body.message}}
