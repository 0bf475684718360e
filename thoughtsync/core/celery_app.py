from __future__ import annotations

from celery import Celery

from thoughtsync.core.config import settings

celery = Celery(
    "thoughtsync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["thoughtsync.tasks.sync_tasks"],
)

celery.conf.update(
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=True,
    task_default_queue="default",
    beat_schedule={
        "sync-periodic": {
            "task": "thoughtsync.tasks.sync_tasks.run_sync_pass",
            "schedule": settings.SYNC_INTERVAL_S,
        },
        "cleanup-storage": {
            "task": "thoughtsync.tasks.sync_tasks.cleanup_storage",
            "schedule": 24 * 60 * 60.0,
        },
    },
)
