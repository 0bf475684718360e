from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from redis import Redis
from sqlalchemy import text

from thoughtsync.api.routers.messages import router as messages_router
from thoughtsync.api.routers.remote import router as remote_router
from thoughtsync.core.config import settings
from thoughtsync.core.logging import configure_logging
from thoughtsync.service import BackgroundService, build_background

configure_logging(settings.LOG_LEVEL)
log = logging.getLogger("app")


def _check_database(bg: BackgroundService) -> bool:
    try:
        with bg.store.bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


def _check_redis() -> bool:
    try:
        r = Redis.from_url(settings.REDIS_URL, socket_connect_timeout=1, socket_timeout=1)
        return bool(r.ping())
    except Exception:
        return False


def create_app(background: BackgroundService | None = None) -> FastAPI:
    app = FastAPI(title=settings.APP_NAME)
    app.state.background = background or build_background()

    @app.on_event("startup")
    def _startup() -> None:
        if not settings.SCHEDULER_ENABLED:
            log.info("Startup: SCHEDULER_ENABLED=false; autonomous sync passes are off")
            return
        app.state.background.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.background.stop()

    @app.get("/health")
    def health() -> dict[str, Any]:
        deps = {"database": _check_database(app.state.background)}
        # The broker only matters when a Celery worker runs the periodic pass.
        if settings.ENSURE_EXTERNAL_DEPS_ON_STARTUP:
            deps["redis"] = _check_redis()
        return {"ok": all(deps.values()), "deps": deps, "app": settings.APP_NAME}

    app.include_router(messages_router, prefix="/messages", tags=["messages"])
    if settings.REMOTE_RECEIVER_ENABLED:
        app.include_router(remote_router, prefix="/api/extension", tags=["remote"])
    return app


app = create_app()
