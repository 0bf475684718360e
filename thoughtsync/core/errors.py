"""Error taxonomy shared by the store, the sync engine and the message router."""

from __future__ import annotations


class ThoughtSyncError(Exception):
    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidInput(ThoughtSyncError):
    """Rejected immediately, never retried."""

    code = "invalid_input"


class StorageUnavailable(ThoughtSyncError):
    """Local persistence failed; no partial state was written."""

    code = "storage_unavailable"


class NetworkError(ThoughtSyncError):
    code = "network_error"


class RemoteRejected(ThoughtSyncError):
    code = "remote_rejected"


class SyncInProgress(ThoughtSyncError):
    code = "sync_in_progress"


class UnsupportedOperation(ThoughtSyncError):
    code = "unsupported_operation"


class InvalidTransition(ThoughtSyncError):
    code = "invalid_transition"


class CaptureNotFound(ThoughtSyncError):
    code = "capture_not_found"
