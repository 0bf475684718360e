from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class CaptureSource(str, Enum):
    POPUP = "popup"
    CONTENT_SCRIPT = "content-script"
    BACKGROUND = "background"


# Forward-only lifecycle; nothing leaves SYNCED.
ALLOWED_TRANSITIONS: dict[SyncState, frozenset[SyncState]] = {
    SyncState.PENDING: frozenset({SyncState.SYNCING}),
    SyncState.SYNCING: frozenset({SyncState.SYNCED, SyncState.FAILED}),
    SyncState.FAILED: frozenset({SyncState.PENDING, SyncState.SYNCING}),
    SyncState.SYNCED: frozenset(),
}

UNSYNCED_STATES = (SyncState.PENDING.value, SyncState.SYNCING.value, SyncState.FAILED.value)
