"""Message Router: the single entry point for untrusted front-end surfaces.

Requests are `{type, payload, requestId}`; responses are `{success, ...data}` or
`{success: false, error, code}`. Fire-and-forget notifications return None.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import ValidationError

from thoughtsync.core.errors import InvalidInput, SyncInProgress, ThoughtSyncError, UnsupportedOperation
from thoughtsync.ingress.service import CaptureIngress
from thoughtsync.models.states import CaptureSource
from thoughtsync.query.service import StatusQueryService
from thoughtsync.schemas.capture import CaptureOut
from thoughtsync.schemas.messages import (
    CaptureThoughtPayload,
    ConnectivityPayload,
    ExtensionMessage,
    RecentThoughtsPayload,
    RetryCapturePayload,
    UpdateSettingsPayload,
)
from thoughtsync.store.local_store import LocalStore
from thoughtsync.sync.engine import SYNC_IN_PROGRESS_MESSAGE, SyncEngine
from thoughtsync.sync.scheduler import SyncScheduler

log = logging.getLogger("message_router")

Response = dict[str, Any] | None
Handler = Callable[[ExtensionMessage, CaptureSource], Response]

CAPTURE_THOUGHT = "CAPTURE_THOUGHT"
SYNC_NOW = "SYNC_NOW"
GET_RECENT_THOUGHTS = "GET_RECENT_THOUGHTS"
GET_SYNC_STATUS = "GET_SYNC_STATUS"
CLEAR_STORAGE = "CLEAR_STORAGE"
CLEANUP_STORAGE = "CLEANUP_STORAGE"
GET_STORAGE_STATS = "GET_STORAGE_STATS"
GET_SETTINGS = "GET_SETTINGS"
UPDATE_SETTINGS = "UPDATE_SETTINGS"
RETRY_CAPTURE = "RETRY_CAPTURE"
CONNECTIVITY_CHANGED = "CONNECTIVITY_CHANGED"


class MessageRouter:
    def __init__(
        self,
        *,
        store: LocalStore,
        ingress: CaptureIngress,
        engine: SyncEngine,
        query: StatusQueryService,
        scheduler: SyncScheduler | None = None,
    ) -> None:
        self.store = store
        self.ingress = ingress
        self.engine = engine
        self.query = query
        self.scheduler = scheduler
        self._handlers: dict[str, Handler] = {
            CAPTURE_THOUGHT: self._capture_thought,
            SYNC_NOW: self._sync_now,
            GET_RECENT_THOUGHTS: self._recent_thoughts,
            GET_SYNC_STATUS: self._sync_status,
            CLEAR_STORAGE: self._clear_storage,
            CLEANUP_STORAGE: self._cleanup_storage,
            GET_STORAGE_STATS: self._storage_stats,
            GET_SETTINGS: self._get_settings,
            UPDATE_SETTINGS: self._update_settings,
            RETRY_CAPTURE: self._retry_capture,
            CONNECTIVITY_CHANGED: self._connectivity_changed,
        }

    @property
    def supported_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def dispatch(self, message: ExtensionMessage | dict[str, Any], *, source: CaptureSource | str = CaptureSource.BACKGROUND) -> Response:
        try:
            source = CaptureSource(source)
            if not isinstance(message, ExtensionMessage):
                message = ExtensionMessage.model_validate(message)
            handler = self._handlers.get(message.type)
            if handler is None:
                log.warning("Unsupported message type from %s: %r", source.value, message.type)
                raise UnsupportedOperation(f"Unsupported message type: {message.type}")
            return handler(message, source)
        except ValidationError as e:
            return _error(InvalidInput(_validation_message(e)))
        except ValueError as e:
            return _error(InvalidInput(str(e)))
        except ThoughtSyncError as e:
            return _error(e)
        except Exception as e:
            log.exception("Message handler failed")
            return {"success": False, "error": str(e) or type(e).__name__, "code": "internal_error"}

    # --- handlers -----------------------------------------------------------

    def _capture_thought(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        p = CaptureThoughtPayload.model_validate(message.payload or {})
        capture = self.ingress.capture(
            p.text,
            p.context,
            source,
            tags=p.tags,
            idempotency_token=p.idempotency_key or _request_token(source, message.request_id),
        )
        return {"success": True, "capture": CaptureOut.from_row(capture).to_wire()}

    def _sync_now(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        result = self.engine.run_pass(manual=True)
        out = result.to_wire()
        if result.error == SYNC_IN_PROGRESS_MESSAGE:
            out["code"] = SyncInProgress.code
        return out

    def _recent_thoughts(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        p = RecentThoughtsPayload.model_validate(message.payload or {})
        thoughts = self.query.get_recent_captures(p.limit)
        return {"success": True, "thoughts": [t.to_wire() for t in thoughts]}

    def _sync_status(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        return {"success": True, "syncStatus": self.query.get_sync_status().to_wire()}

    def _clear_storage(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        removed = self.store.delete_all()
        log.info("Local store cleared by %s (%s captures)", source.value, removed)
        return {"success": True, "removed": removed}

    def _cleanup_storage(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        return {"success": True, "removed": self.store.cleanup(self.ingress.keep_synced)}

    def _storage_stats(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        return {"success": True, "stats": self.query.get_storage_stats().to_wire()}

    def _get_settings(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        return {"success": True, "settings": self.query.get_settings().to_wire()}

    def _update_settings(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        p = UpdateSettingsPayload.model_validate(message.payload or {})
        self.store.update_user_settings(p.model_dump(by_alias=True, exclude_none=True))
        return {"success": True, "settings": self.query.get_settings().to_wire()}

    def _retry_capture(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        p = RetryCapturePayload.model_validate(message.payload or {})
        capture = self.store.retry(p.id)
        if self.scheduler is not None:
            self.scheduler.notify_capture()
        return {"success": True, "capture": CaptureOut.from_row(capture).to_wire()}

    def _connectivity_changed(self, message: ExtensionMessage, source: CaptureSource) -> Response:
        p = ConnectivityPayload.model_validate(message.payload or {})
        if self.scheduler is not None:
            self.scheduler.set_online(p.is_online)
        else:
            self.engine.set_online(p.is_online)
        return None


def _error(e: ThoughtSyncError) -> dict[str, Any]:
    return {"success": False, "error": e.message, "code": e.code}


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    loc = ".".join(str(x) for x in first.get("loc", ()))
    return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))


def _request_token(source: CaptureSource, request_id: str | None) -> str | None:
    # Request ids are only unique per surface; an explicit idempotencyKey is global.
    return f"{source.value}:{request_id}" if request_id else None
