from __future__ import annotations

import logging

from thoughtsync.core.celery_app import celery
from thoughtsync.service import BackgroundService, build_background

log = logging.getLogger("sync_tasks")

_background: BackgroundService | None = None


def get_background() -> BackgroundService:
    """Worker-side components, built on first use against the configured store."""

    global _background
    if _background is None:
        _background = build_background()
    return _background


@celery.task(name="thoughtsync.tasks.sync_tasks.run_sync_pass")
def run_sync_pass(*, manual: bool = False) -> dict:
    """Run one sync pass from the worker.

    The persisted lease on the status row keeps this from overlapping a pass
    started by the API process.
    """

    result = get_background().engine.run_pass(manual=manual)
    if result.error and not result.success:
        log.info("Worker sync pass: %s", result.error)
    return {"ok": result.success, **result.to_wire()}


@celery.task(name="thoughtsync.tasks.sync_tasks.cleanup_storage")
def cleanup_storage(*, keep_synced: int | None = None) -> dict:
    bg = get_background()
    removed = bg.store.cleanup(keep_synced if keep_synced is not None else bg.ingress.keep_synced)
    return {"ok": True, "removed": removed}
