from __future__ import annotations

from thoughtsync.core.config import settings
from thoughtsync.schemas.capture import CaptureOut, StorageStats, SyncStatusOut, UserSettings
from thoughtsync.store.local_store import LocalStore
from thoughtsync.util.time import as_utc


class StatusQueryService:
    """Read-only view over the Local Store. Never takes the sync lock, never writes."""

    def __init__(self, store: LocalStore, *, max_retries: int | None = None) -> None:
        self.store = store
        self.max_retries = settings.SYNC_MAX_RETRIES if max_retries is None else max_retries

    def get_recent_captures(self, limit: int = 10, offset: int = 0) -> list[CaptureOut]:
        return [CaptureOut.from_row(c) for c in self.store.list(limit=limit, offset=offset)]

    def get_sync_status(self) -> SyncStatusOut:
        row = self.store.get_status()
        if row is None:
            # Nothing written yet (or the medium is unreadable): derive what we can.
            return SyncStatusOut(is_online=self.store.initial_online, pending_count=self.store.count_unsynced())
        return SyncStatusOut.from_row(row)

    def get_storage_stats(self) -> StorageStats:
        s = self.store.stats(max_retries=self.max_retries)
        return StorageStats(
            total_captures=s["total"],
            synced_captures=s["synced"],
            unsynced_captures=s["unsynced"],
            exhausted_captures=s["exhausted"],
            last_cleanup=as_utc(s["last_cleanup"]),
        )

    def get_settings(self) -> UserSettings:
        return UserSettings.model_validate(self.store.get_user_settings())
