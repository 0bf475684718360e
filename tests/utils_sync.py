from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from thoughtsync.core.db import make_engine
from thoughtsync.service import BackgroundService, build_background
from thoughtsync.sync.adapters.base import DeliveryResult


class FakeTimer:
    def __init__(self, interval: float, fn: Callable[[], Any], registry: list["FakeTimer"]):
        self.interval = interval
        self.fn = fn
        self.started = False
        self.cancelled = False
        registry.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> Any:
        assert self.started and not self.cancelled
        return self.fn()


@dataclass
class FakeTimers:
    created: list[FakeTimer] = field(default_factory=list)

    def __call__(self, interval: float, fn: Callable[[], Any]) -> FakeTimer:
        return FakeTimer(interval, fn, self.created)

    def live(self) -> list[FakeTimer]:
        return [t for t in self.created if t.started and not t.cancelled]


class RecordingAdapter:
    """Remote double: keeps one record per id, fails while `fail` says so."""

    kind = "fake"

    def __init__(self, fail: Callable[[dict], bool] | bool = False):
        self.fail = fail
        self.calls: list[dict] = []
        self.records: dict[str, dict] = {}
        self.on_deliver: Callable[[dict], None] | None = None

    def deliver(self, *, payload: dict) -> DeliveryResult:
        self.calls.append(payload)
        if self.on_deliver is not None:
            self.on_deliver(payload)
        failing = self.fail(payload) if callable(self.fail) else self.fail
        if failing:
            return DeliveryResult(status="FAILED", retryable=True, reason="remote_rejected:http_503:unavailable")
        self.records[payload["id"]] = payload
        return DeliveryResult(status="SENT", remote_id=payload["id"])


class BlockingAdapter(RecordingAdapter):
    """Holds the first delivery until released, so a pass can be observed mid-flight."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def deliver(self, *, payload: dict) -> DeliveryResult:
        self.entered.set()
        assert self.release.wait(timeout=10)
        return super().deliver(payload=payload)


class Clock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def make_background(tmp_path, *, adapter=None, timers=None, **engine_kwargs) -> BackgroundService:
    tmp_path.mkdir(parents=True, exist_ok=True)
    bind = make_engine(f"sqlite+pysqlite:///{tmp_path / 'store.db'}")
    engine_kwargs.setdefault("backoff_base_s", 0)
    return build_background(
        bind=bind,
        adapter=adapter if adapter is not None else RecordingAdapter(),
        timer_factory=timers if timers is not None else FakeTimers(),
        **engine_kwargs,
    )


def assert_pending_invariant(bg: BackgroundService) -> None:
    from thoughtsync.models.states import SyncState

    not_synced = [c for c in bg.store.list() if c.sync_state != SyncState.SYNCED.value]
    assert bg.query.get_sync_status().pending_count == len(not_synced)


def add_capture(store, *, capture_id: str, created_at: datetime, text: str = "note", state: str = "pending", retry_count: int = 0):
    from thoughtsync.models.tables import Capture

    return store.put(
        Capture(
            id=capture_id,
            text=text,
            context=None,
            created_at=created_at,
            source="background",
            sync_state=state,
            synced_at=created_at if state == "synced" else None,
            retry_count=retry_count,
            last_attempt_at=None,
            last_error=None,
            tags=[],
            meta={},
            client_token=None,
        )
    )
