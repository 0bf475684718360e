"""Sync Engine: delivers pending captures to the remote endpoint, one pass at a time.

Per-capture lifecycle:
- pending -> syncing -> synced
- pending -> syncing -> failed -> (next pass) syncing ...
- failed with retry_count >= max is left alone by automatic passes; a manual
  pass resets it to pending/0 and delivers it again.

A pass is guarded twice: a non-blocking threading.Lock for callers inside this
process, and the persisted `syncing` lease on the status row for any other
process sharing the store (Celery worker). The lease carries an owner token and
is renewed before every capture, so a long pass keeps it and a pass that lost
it stops instead of releasing someone else's. Overlapping triggers are rejected,
never queued.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from thoughtsync.core.config import settings
from thoughtsync.core.errors import InvalidTransition, StorageUnavailable
from thoughtsync.models.states import SyncState
from thoughtsync.models.tables import Capture
from thoughtsync.schemas.capture import SyncDetails, SyncResult, to_remote_payload
from thoughtsync.store.local_store import LocalStore
from thoughtsync.sync.adapters.base import DeliveryResult, RemoteAdapter
from thoughtsync.util.ids import new_uuid
from thoughtsync.util.time import as_utc, now_utc

log = logging.getLogger("sync_engine")

SYNC_IN_PROGRESS_MESSAGE = "sync already in progress"
OFFLINE_MESSAGE = "Offline - sync will resume when online"
SYNC_DISABLED_MESSAGE = "sync disabled in settings"
INTERRUPTED_MESSAGE = "interrupted: previous sync pass did not finish"
LEASE_LOST_MESSAGE = "sync lease taken over by another pass"


class SyncEngine:
    def __init__(
        self,
        store: LocalStore,
        adapter: RemoteAdapter,
        *,
        max_retries: int | None = None,
        backoff_base_s: float | None = None,
        lease_s: float | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.store = store
        self.adapter = adapter
        self.max_retries = settings.SYNC_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_base_s = settings.SYNC_BACKOFF_BASE_S if backoff_base_s is None else backoff_base_s
        self.lease_s = settings.SYNC_LEASE_S if lease_s is None else lease_s
        self.clock = clock
        self._pass_lock = threading.Lock()

    # --- connectivity -------------------------------------------------------

    def is_online(self) -> bool:
        row = self.store.get_status()
        return bool(row.is_online) if row else self.store.initial_online

    def set_online(self, online: bool) -> bool:
        """Record connectivity; returns the previous value."""

        previous = self.store.set_online(online)
        if previous != online:
            log.info("Connectivity changed: %s", "online" if online else "offline")
        return previous

    def sync_enabled(self) -> bool:
        return bool(self.store.get_user_settings().get("syncEnabled", True))

    # --- eligibility --------------------------------------------------------

    def backoff_elapsed(self, capture: Capture, now: datetime) -> bool:
        """A capture with retry_count n waits base * 2**n after its last attempt."""

        if not capture.retry_count or capture.last_attempt_at is None:
            return True
        wait = timedelta(seconds=self.backoff_base_s * (2 ** capture.retry_count))
        return now - as_utc(capture.last_attempt_at) >= wait

    def eligible(self, *, manual: bool, now: datetime | None = None) -> list[Capture]:
        """Captures the next pass would attempt, oldest first."""

        now = now or self.clock()
        states = (SyncState.PENDING, SyncState.FAILED)
        if manual:
            return self.store.list(states, oldest_first=True)
        items = self.store.list(states, oldest_first=True, max_retry_count=self.max_retries)
        return [c for c in items if self.backoff_elapsed(c, now)]

    # --- passes -------------------------------------------------------------

    def run_pass(self, *, manual: bool = False) -> SyncResult:
        if not self.is_online():
            return SyncResult(success=False, synced=0, error=OFFLINE_MESSAGE)
        if not manual and not self.sync_enabled():
            return SyncResult(success=False, synced=0, error=SYNC_DISABLED_MESSAGE)

        if not self._pass_lock.acquire(blocking=False):
            log.info("Sync pass rejected: another pass is running in this process")
            return self._in_progress()
        try:
            owner = new_uuid()
            try:
                acquired = self.store.try_acquire_sync_lease(now=self.clock(), lease_s=self.lease_s, owner=owner)
            except StorageUnavailable as e:
                log.exception("Sync pass aborted: cannot acquire lease")
                return SyncResult(success=False, synced=0, error=e.message)
            if not acquired:
                log.info("Sync pass rejected: lease held by another process")
                return self._in_progress()
            return self._run_locked(manual=manual, owner=owner)
        finally:
            self._pass_lock.release()

    def _in_progress(self) -> SyncResult:
        return SyncResult(success=False, synced=0, error=SYNC_IN_PROGRESS_MESSAGE)

    def _run_locked(self, *, manual: bool, owner: str) -> SyncResult:
        started = self.clock()
        try:
            # Holding the lease means nothing else is mid-delivery.
            interrupted = self.store.fail_interrupted(INTERRUPTED_MESSAGE)
            if interrupted:
                log.warning("Recovered %s captures left in syncing", interrupted)
            if manual:
                reset = self.store.reset_exhausted(self.max_retries)
                if reset:
                    log.info("Manual sync re-armed %s exhausted captures", reset)
            items = self.eligible(manual=manual, now=started)
        except StorageUnavailable as e:
            return self._abort(e, owner=owner)

        log.info("Sync pass started (%s): %s eligible", "manual" if manual else "auto", len(items))

        synced = 0
        errors: list[str] = []
        try:
            for cap in items:
                # The lease only covers one item at a time; a pass longer than lease_s stays exclusive.
                if not self.store.renew_sync_lease(now=self.clock(), lease_s=self.lease_s, owner=owner):
                    return self._lease_lost(synced=synced, errors=errors, total=len(items))
                outcome = self._deliver_one(cap)
                if outcome is None:
                    continue
                if outcome.ok:
                    synced += 1
                else:
                    errors.append(f"{cap.id}: {outcome.reason}")
        except StorageUnavailable as e:
            return self._abort(e, owner=owner, synced=synced, errors=errors, total=len(items))

        failed = len(errors)
        success = failed == 0
        error = None if success else f"{failed} of {len(items)} captures failed to sync"
        try:
            released = self.store.finish_sync_pass(
                now=self.clock(), succeeded=synced > 0 or not items, error=error, owner=owner
            )
        except StorageUnavailable as e:
            log.exception("Sync pass finished but status update failed")
            error = error or e.message
        else:
            if not released:
                log.warning("Sync pass finished after its lease was taken over; status left to the new holder")

        log.info("Sync pass finished: %s synced, %s failed", synced, failed)
        return SyncResult(
            success=success,
            synced=synced,
            errors=errors,
            error=error,
            details=SyncDetails(total=len(items), successful=synced, failed=failed, errors=errors),
        )

    def _deliver_one(self, cap: Capture) -> DeliveryResult | None:
        """Returns None when the capture vanished (cleared) or moved on since the snapshot."""

        try:
            moved = self.store.update_sync_fields(
                cap.id, {"sync_state": SyncState.SYNCING, "last_attempt_at": self.clock()}
            )
        except InvalidTransition:
            log.debug("Capture %s changed state since snapshot; skipped", cap.id)
            return None
        if not moved:
            log.debug("Capture %s removed during pass; skipped", cap.id)
            return None

        try:
            result = self.adapter.deliver(payload=to_remote_payload(cap))
        except Exception as e:
            log.exception("Adapter %s raised for capture %s", self.adapter.kind, cap.id)
            result = DeliveryResult(status="FAILED", retryable=True, reason=f"exception:{type(e).__name__}:{str(e)}")

        if result.ok:
            patch = {"sync_state": SyncState.SYNCED, "synced_at": self.clock()}
        else:
            log.warning(
                "Delivery of %s failed (attempt %s, %s): %s",
                cap.id,
                (cap.retry_count or 0) + 1,
                "transient" if result.retryable else "rejected",
                result.reason,
            )
            patch = {
                "sync_state": SyncState.FAILED,
                "retry_count": (cap.retry_count or 0) + 1,
                "last_error": result.reason,
            }
        try:
            self.store.update_sync_fields(cap.id, patch)
        except InvalidTransition:
            log.warning("Capture %s was taken over by another pass during delivery; skipped", cap.id)
            return None
        return result

    def _lease_lost(self, *, synced: int, errors: list[str], total: int) -> SyncResult:
        log.warning("Sync pass stopped: lease taken over by another pass")
        return SyncResult(
            success=False,
            synced=synced,
            errors=errors,
            error=LEASE_LOST_MESSAGE,
            details=SyncDetails(total=total, successful=synced, failed=len(errors), errors=errors),
        )

    def _abort(
        self,
        e: StorageUnavailable,
        *,
        owner: str,
        synced: int = 0,
        errors: list[str] | None = None,
        total: int = 0,
    ) -> SyncResult:
        log.exception("Sync pass aborted: %s", e.message)
        try:
            self.store.finish_sync_pass(
                now=self.clock(), succeeded=False, error=e.message, owner=owner, refresh_pending=False
            )
        except StorageUnavailable:
            log.error("Could not release sync lease; it expires in %ss", self.lease_s)
        errors = list(errors or [])
        return SyncResult(
            success=False,
            synced=synced,
            errors=errors,
            error=e.message,
            details=SyncDetails(total=total, successful=synced, failed=len(errors), errors=errors),
        )
