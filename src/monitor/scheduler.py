"""Periodic tick loop with non-overlapping execution.

One background thread runs ``callback(now)`` every ``interval_sec``.  The
next tick is only scheduled once the current one has returned; if a tick
overruns, the missed slots are skipped (and counted) rather than run
back-to-back or concurrently.  ``stop()`` lets an in-flight tick finish.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime

from src.monitor.stats import MonitorStats
from src.shared.timeutil import utcnow

log = logging.getLogger(__name__)


class TickScheduler:
    def __init__(
        self,
        callback: Callable[[datetime], object],
        interval_sec: float,
        stats: MonitorStats | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        name: str = "monitor-ticker",
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self.callback = callback
        self.interval_sec = interval_sec
        self.stats = stats or MonitorStats()
        self._clock = clock
        self._monotonic = monotonic
        self._name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_lock = threading.Lock()
        self.ticks_run = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()
        log.info("Scheduler started (interval=%.1fs)", self.interval_sec)

    def stop(self, timeout: float | None = None) -> None:
        """Signal shutdown and wait for the in-flight tick to complete."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log.info("Scheduler stopped after %d ticks", self.ticks_run)

    def run_once(self) -> None:
        """Run a single tick on the calling thread.

        Never runs concurrently with another tick; exceptions are logged
        and swallowed so the loop survives any single tick's failure.
        """
        with self._tick_lock:
            try:
                self.callback(self._clock())
            except Exception:
                self.stats.incr("tick_failures")
                log.exception("Tick failed — continuing on next schedule")
            finally:
                self.ticks_run += 1

    def _loop(self) -> None:
        next_at = self._monotonic()
        while not self._stop.is_set():
            self.run_once()
            next_at += self.interval_sec
            now = self._monotonic()
            if now > next_at:
                missed = int((now - next_at) // self.interval_sec) + 1
                self.stats.incr("ticks_skipped", missed)
                log.warning("Tick overran by %.2fs — skipping %d tick(s)", now - next_at, missed)
                next_at += missed * self.interval_sec
            self._stop.wait(max(0.0, next_at - self._monotonic()))
