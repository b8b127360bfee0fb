"""Remote file store tier — one versioned JSON blob per collection.

The wire protocol follows the GitHub contents API:

    GET  {base_url}/{path}
         200 → {"content": "<base64 JSON>", "sha": "<version token>", ...}
         404 → blob does not exist yet
    PUT  {base_url}/{path}
         body {"message": ..., "content": "<base64 JSON>", "sha"?: ..., "branch"?: ...}
         200/201 → {"content": {"sha": "<new token>"}}
         409/422 → the token is stale (or missing for an existing blob)

A write is a whole-document replace. The current token is fetched right
before every write; a conflict is retried once with a fresh token and then
dropped.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

import httpx

from .base import BackendUnavailable, Change, Collection, CorruptData, StoreError, WriteConflict

logger = logging.getLogger(__name__)

_CONFLICT_STATUSES = (409, 422)


@dataclass
class Blob:
    value: Any
    sha: str


class FileStoreClient:
    """Async HTTP client for a GitHub-contents-style blob store.

    Args:
        base_url: Directory URL the collection blobs live under, e.g.
                  "https://api.github.com/repos/acme/hotel-data/contents/data".
        token:    Bearer token, or empty string when the store is open.
        branch:   Branch name sent with writes; omitted when empty.
        timeout:  HTTP timeout in seconds.
    """

    def __init__(
        self, base_url: str, token: str = "", branch: str = "", timeout: float = 6.0
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._branch = branch
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "housekeeping-sync",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _send(self, method: str, url: str, body: dict | None = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(method, url, json=body, headers=self._headers())
        except httpx.ConnectError as e:
            raise BackendUnavailable(f"Cannot connect to file store at {self._base_url}") from e
        except httpx.TimeoutException as e:
            raise BackendUnavailable(f"File store timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"File store request failed: {e}") from e

    async def probe(self) -> bool:
        """The data directory answering at all (404 included) means reachable."""
        try:
            resp = await self._send("GET", self._base_url)
        except StoreError as e:
            logger.info("File store probe failed: %s", e)
            return False
        return resp.is_success or resp.status_code == 404

    async def get(self, path: str) -> Blob | None:
        resp = await self._send("GET", f"{self._base_url}/{path}")
        if resp.status_code == 404:
            return None
        if not resp.is_success:
            raise BackendUnavailable(f"File store returned HTTP {resp.status_code}", resp.status_code)
        try:
            data = resp.json()
            raw = base64.b64decode(data["content"].replace("\n", ""))
            return Blob(value=json.loads(raw), sha=data["sha"])
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise CorruptData(f"File store blob {path} could not be decoded") from e

    async def put(self, path: str, value: Any, sha: str | None, message: str) -> str | None:
        content = base64.b64encode(json.dumps(value, indent=2).encode()).decode()
        stamp = datetime.now(timezone.utc).isoformat()
        body: dict[str, Any] = {"message": f"{message} - {stamp}", "content": content}
        if sha:
            body["sha"] = sha
        if self._branch:
            body["branch"] = self._branch
        resp = await self._send("PUT", f"{self._base_url}/{path}", body)
        if resp.status_code in _CONFLICT_STATUSES:
            raise WriteConflict(f"Version token for {path} is stale (HTTP {resp.status_code})")
        if not resp.is_success:
            raise BackendUnavailable(f"File store returned HTTP {resp.status_code}", resp.status_code)
        try:
            return resp.json()["content"]["sha"]
        except (KeyError, TypeError, ValueError):
            return None


class FileStore:
    """Tier adapter: collections live at "{collection}.json"."""

    name = "files"

    def __init__(self, client: FileStoreClient) -> None:
        self._client = client

    async def probe(self) -> bool:
        return await self._client.probe()

    async def read(self, collection: Collection) -> Any | None:
        blob = await self._client.get(f"{collection}.json")
        if blob is None:
            logger.debug("File store has no %s.json yet", collection)
            return None
        return blob.value

    async def _current_sha(self, path: str) -> str | None:
        try:
            blob = await self._client.get(path)
        except StoreError as e:
            logger.debug("Token fetch for %s failed, writing without one: %s", path, e)
            return None
        return blob.sha if blob else None

    async def write(
        self, collection: Collection, value: list[dict], changes: Sequence[Change] = ()
    ) -> None:
        path = f"{collection}.json"
        for attempt in (1, 2):
            sha = await self._current_sha(path)
            try:
                await self._client.put(path, value, sha, message=f"Update {collection} data")
                return
            except WriteConflict:
                if attempt == 2:
                    logger.warning("Dropping %s write after a second version conflict", collection)
                    raise
                logger.info("Version conflict writing %s, retrying with a fresh token", collection)
