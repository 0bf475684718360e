from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from thoughtsync.core.config import settings
from thoughtsync.schemas.capture import SyncResult
from thoughtsync.sync.engine import SyncEngine

log = logging.getLogger("sync_scheduler")

TimerFactory = Callable[[float, Callable[[], Any]], Any]


def _daemon_timer(interval: float, fn: Callable[[], Any]) -> threading.Timer:
    t = threading.Timer(interval, fn)
    t.daemon = True
    return t


class SyncScheduler:
    """Decides WHEN automatic passes run; the engine decides which captures they touch.

    Triggers:
    - a repeating interval timer
    - a debounced signal after each new capture (a burst of captures yields one pass)
    - an immediate pass when connectivity goes offline -> online
    """

    def __init__(
        self,
        engine: SyncEngine,
        *,
        interval_s: float | None = None,
        debounce_s: float | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self.engine = engine
        self.interval_s = settings.SYNC_INTERVAL_S if interval_s is None else interval_s
        self.debounce_s = settings.SYNC_DEBOUNCE_S if debounce_s is None else debounce_s
        self._timer_factory = timer_factory or _daemon_timer
        self._lock = threading.Lock()
        self._debounce_timer: Any = None
        self._interval_timer: Any = None
        self._running = False

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._arm_interval()
        log.info("Sync scheduler started (interval=%ss, debounce=%ss)", self.interval_s, self.debounce_s)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            for t in (self._interval_timer, self._debounce_timer):
                if t is not None:
                    t.cancel()
            self._interval_timer = None
            self._debounce_timer = None

    def notify_capture(self) -> None:
        """Sync opportunity after a capture; restarts the debounce window. No-op while stopped."""

        with self._lock:
            if not self._running:
                return
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            self._debounce_timer = self._timer_factory(self.debounce_s, self._on_debounce)
            self._debounce_timer.start()

    def set_online(self, online: bool) -> None:
        """Connectivity is always recorded; the catch-up pass only runs while started."""

        previous = self.engine.set_online(online)
        with self._lock:
            if online and not previous and self._running:
                self._timer_factory(0, self.run_automatic).start()

    def run_automatic(self) -> SyncResult:
        result = self.engine.run_pass(manual=False)
        if not result.success and result.error:
            log.debug("Automatic sync pass: %s", result.error)
        return result

    def _on_debounce(self) -> None:
        with self._lock:
            self._debounce_timer = None
        self.run_automatic()

    def _on_interval(self) -> None:
        try:
            self.run_automatic()
        finally:
            with self._lock:
                if self._running:
                    self._arm_interval()

    def _arm_interval(self) -> None:
        self._interval_timer = self._timer_factory(self.interval_s, self._on_interval)
        self._interval_timer.start()
