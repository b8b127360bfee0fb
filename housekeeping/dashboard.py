"""Top-level wiring for a dashboard client.

    settings = load_settings()
    async with Dashboard.from_settings(settings) as dashboard:
        await dashboard.domain.update_room_status("101", "clean")

Entering the context probes the backends, loads all state, runs the reset
check and starts the background jobs; leaving it stops the jobs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from housekeeping.config import Settings
from housekeeping.coordinator import StorageCoordinator, is_usable
from housekeeping.domain import DomainStore
from housekeeping.models import utcnow
from housekeeping.reset import DailyReset, Snapshot
from housekeeping.rooms import generate_catalog
from housekeeping.scheduler import BackgroundJobs
from housekeeping.session import SessionManager
from housekeeping.stores import (
    ApiStore,
    CollectionStore,
    FileStore,
    FileStoreClient,
    LocalCache,
    StorageInfo,
    StructuredStoreClient,
)
from housekeeping.transfer import ImportReport, export_data, import_data

logger = logging.getLogger(__name__)


class Dashboard:
    def __init__(
        self,
        settings: Settings,
        local: LocalCache,
        remote: list[CollectionStore],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.local = local
        self._clock = clock
        self.coordinator = StorageCoordinator(
            [*remote, local],
            timeout=settings.request_timeout,
            failure_threshold=settings.failure_threshold,
        )
        self.domain = DomainStore(self.coordinator, clock, settings.overdue_hours)
        self.session = SessionManager(local.kv)
        self.reset = DailyReset(self.domain, local.kv, clock, settings)
        self.storage_info: StorageInfo = local.storage_info()

        self.jobs = BackgroundJobs()
        self.jobs.add("storage-info", settings.storage_info_interval, self._refresh_storage_info)
        self.jobs.add("health-check", settings.health_check_interval, self.coordinator.health_check)
        self.jobs.add("reset-check", settings.reset_check_interval, self.reset.check)
        self.jobs.add("refresh", settings.refresh_interval, self.domain.refresh)

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = utcnow) -> Dashboard:
        """Build the tier list from settings; unset URLs leave a tier out."""
        remote: list[CollectionStore] = []
        if settings.api_url:
            remote.append(ApiStore(StructuredStoreClient(settings.api_url, settings.request_timeout)))
        if settings.file_store_url:
            client = FileStoreClient(
                settings.file_store_url,
                token=settings.file_store_token,
                branch=settings.file_store_branch,
                timeout=settings.request_timeout,
            )
            remote.append(FileStore(client))
        local = LocalCache.in_directory(settings.cache_dir, settings.cache_quota_bytes, is_usable)
        return cls(settings, local, remote, clock)

    async def _refresh_storage_info(self) -> StorageInfo:
        self.storage_info = self.local.storage_info()
        if self.storage_info.capacity_exceeded:
            logger.warning(
                "Local cache full: %d of %d bytes used", self.storage_info.used, self.storage_info.quota
            )
        return self.storage_info

    async def start(self) -> None:
        reachable = await self.coordinator.probe_all()
        logger.info("Storage tiers reachable: %s", reachable)
        await self.domain.load()
        await self.reset.check()
        self.jobs.start()

    async def stop(self) -> None:
        await self.jobs.stop()

    async def __aenter__(self) -> Dashboard:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def export_document(self) -> str:
        return await export_data(self.coordinator)

    async def import_document(self, text: str) -> ImportReport:
        """Import a document and reload state from storage."""
        report = await import_data(self.coordinator, text)
        await self.domain.load()
        return report

    async def clear_all(self) -> None:
        """Reset every tier to defaults: the full room catalog and empty collections."""
        await self.local.clear()
        await self.domain.replace_all(Snapshot(rooms=generate_catalog(self._clock())))
        self.reset.mark_done(self.reset.today())
        logger.info("All data cleared")
