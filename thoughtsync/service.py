"""Composition root: one explicitly owned set of components per background process."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from thoughtsync.core.config import settings
from thoughtsync.ingress.service import CaptureIngress
from thoughtsync.messaging.router import MessageRouter
from thoughtsync.query.service import StatusQueryService
from thoughtsync.store.local_store import LocalStore
from thoughtsync.sync.adapters.base import RemoteAdapter
from thoughtsync.sync.adapters.registry import get_adapter
from thoughtsync.sync.engine import SyncEngine
from thoughtsync.sync.scheduler import SyncScheduler, TimerFactory


@dataclass
class BackgroundService:
    store: LocalStore
    engine: SyncEngine
    scheduler: SyncScheduler
    ingress: CaptureIngress
    query: StatusQueryService
    router: MessageRouter

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()


def build_background(
    *,
    bind: Engine | None = None,
    adapter: RemoteAdapter | None = None,
    timer_factory: TimerFactory | None = None,
    **engine_kwargs,
) -> BackgroundService:
    store = LocalStore(bind)
    store.init_schema()

    if adapter is None:
        adapter = get_adapter(settings.REMOTE_MODE, sessions=store.session_factory)

    engine = SyncEngine(store, adapter, **engine_kwargs)
    scheduler = SyncScheduler(engine, timer_factory=timer_factory)
    ingress = CaptureIngress(store, on_captured=scheduler.notify_capture)
    query = StatusQueryService(store, max_retries=engine.max_retries)
    router = MessageRouter(store=store, ingress=ingress, engine=engine, query=query, scheduler=scheduler)
    return BackgroundService(
        store=store, engine=engine, scheduler=scheduler, ingress=ingress, query=query, router=router
    )
