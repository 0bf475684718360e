from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from thoughtsync.models.states import SyncState
from thoughtsync.models.tables import Capture, SyncStatusRow
from thoughtsync.util.time import as_utc


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class CaptureContext(WireModel):
    url: str | None = None
    title: str | None = None
    favicon: str | None = None
    domain: str | None = None
    selected_text: str | None = None
    timestamp: int | None = None  # epoch ms


class CaptureOut(WireModel):
    id: str
    text: str
    context: CaptureContext | None = None
    created_at: datetime
    source: str
    sync_state: SyncState
    synced_at: datetime | None = None
    retry_count: int = 0
    last_error: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Capture) -> "CaptureOut":
        return cls(
            id=row.id,
            text=row.text,
            context=CaptureContext.model_validate(row.context) if row.context else None,
            created_at=as_utc(row.created_at),
            source=row.source,
            sync_state=SyncState(row.sync_state),
            synced_at=as_utc(row.synced_at),
            retry_count=row.retry_count or 0,
            last_error=row.last_error,
            tags=list(row.tags or []),
            metadata=dict(row.meta or {}),
        )


def to_remote_payload(row: Capture) -> dict[str, Any]:
    """What the remote endpoint receives: the capture minus local sync bookkeeping."""

    return CaptureOut.from_row(row).model_dump(
        by_alias=True,
        mode="json",
        include={"id", "text", "context", "created_at", "source", "tags", "metadata"},
    )


class SyncStatusOut(WireModel):
    is_online: bool = True
    pending_count: int = 0
    last_sync: datetime | None = None
    syncing: bool = False
    error: str | None = None

    @classmethod
    def from_row(cls, row: SyncStatusRow) -> "SyncStatusOut":
        return cls(
            is_online=bool(row.is_online),
            pending_count=row.pending_count or 0,
            last_sync=as_utc(row.last_sync),
            syncing=bool(row.syncing),
            error=row.error,
        )


class SyncDetails(WireModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class SyncResult(WireModel):
    success: bool
    synced: int = 0
    errors: list[str] = Field(default_factory=list)
    error: str | None = None
    details: SyncDetails | None = None


class StorageStats(WireModel):
    total_captures: int = 0
    synced_captures: int = 0
    unsynced_captures: int = 0
    exhausted_captures: int = 0
    last_cleanup: datetime | None = None


class UserSettings(WireModel):
    sync_enabled: bool = True
    auto_capture: bool = True
    notifications: bool = True
    analytics_enabled: bool = True
