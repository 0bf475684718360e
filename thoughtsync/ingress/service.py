from __future__ import annotations

import logging
from typing import Any, Callable

from thoughtsync.core.config import settings
from thoughtsync.core.errors import InvalidInput, StorageUnavailable
from thoughtsync.models.states import CaptureSource, SyncState
from thoughtsync.models.tables import Capture
from thoughtsync.schemas.capture import CaptureContext
from thoughtsync.store.local_store import LocalStore
from thoughtsync.util.ids import new_uuid
from thoughtsync.util.time import now_utc

log = logging.getLogger("capture_ingress")

MAX_TEXT_LENGTH = 20_000


class CaptureIngress:
    """Normalizes capture requests from any surface and stores them before returning."""

    def __init__(
        self,
        store: LocalStore,
        *,
        on_captured: Callable[[], None] | None = None,
        cleanup_threshold: int | None = None,
        keep_synced: int | None = None,
    ) -> None:
        self.store = store
        self.on_captured = on_captured
        self.cleanup_threshold = settings.STORE_CLEANUP_THRESHOLD if cleanup_threshold is None else cleanup_threshold
        self.keep_synced = settings.STORE_KEEP_SYNCED if keep_synced is None else keep_synced

    def capture(
        self,
        text: str,
        context: CaptureContext | dict[str, Any] | None = None,
        source: CaptureSource | str = CaptureSource.BACKGROUND,
        *,
        tags: list[str] | None = None,
        idempotency_token: str | None = None,
    ) -> Capture:
        """Validate + idempotent insert, then signal a sync opportunity."""

        if not isinstance(text, str) or not text.strip():
            raise InvalidInput("Capture text must not be empty")
        text = text.strip()
        if len(text) > MAX_TEXT_LENGTH:
            raise InvalidInput(f"Capture text exceeds {MAX_TEXT_LENGTH} characters")

        try:
            source = CaptureSource(source)
        except ValueError:
            raise InvalidInput(f"Unknown capture source: {source}") from None

        if idempotency_token:
            existing = self.store.get_by_token(idempotency_token)
            if existing:
                log.debug("Capture token %s already stored as %s", idempotency_token, existing.id)
                return existing

        created_at = now_utc()
        ctx = self._normalize_context(context, created_at_ms=int(created_at.timestamp() * 1000))

        capture = Capture(
            id=self._new_id(),
            text=text,
            context=ctx,
            created_at=created_at,
            source=source.value,
            sync_state=SyncState.PENDING.value,
            synced_at=None,
            retry_count=0,
            last_attempt_at=None,
            last_error=None,
            tags=[t.strip().lower() for t in (tags or []) if t and t.strip()],
            meta={},
            client_token=idempotency_token or None,
        )
        self.store.put(capture)
        log.debug("Capture stored: %s (%s)", capture.id, source.value)

        if self.store.count_all() > self.cleanup_threshold:
            try:
                self.store.cleanup(self.keep_synced)
            except StorageUnavailable as e:
                # The capture itself is stored; retention runs again on the next insert.
                log.warning("Retention after capture %s failed: %s", capture.id, e.message)

        if self.on_captured is not None:
            self.on_captured()
        return capture

    def _new_id(self) -> str:
        # uuid4 collisions are negligible; the check keeps the id unique within this store regardless.
        capture_id = new_uuid()
        while self.store.exists(capture_id):
            capture_id = new_uuid()
        return capture_id

    @staticmethod
    def _normalize_context(context: CaptureContext | dict[str, Any] | None, *, created_at_ms: int) -> dict | None:
        if context is None:
            return None
        if not isinstance(context, CaptureContext):
            try:
                context = CaptureContext.model_validate(context)
            except ValueError as e:
                raise InvalidInput(f"Invalid capture context: {e}") from None
        if context.timestamp is None:
            context = context.model_copy(update={"timestamp": created_at_ms})
        return context.model_dump(by_alias=True, exclude_none=True)
