"""Window Aggregator — clock-aligned tumbling windows per rule.

Each registered rule gets its own *series*: the rule's matcher plus its
window size.  Windows are retired only by the evaluation clock: once
``snapshot`` has evaluated at *now*, a series keeps the in-progress window
and the one just completed, and drops anything older.  Event timestamps
never move that clock, so an event dated in the future is simply held in
its own window until the clock reaches it.

Bucketing
─────────
  bucket(ts) = floor(ts / window) * window      (UNIX epoch aligned)

so windows do not depend on when the first event arrived, and an event
exactly on a boundary belongs to the window starting at that instant.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from src.contracts.errors import EvaluationError
from src.contracts.event import AccessEvent
from src.contracts.rule import AlertRule
from src.contracts.state import TimeWindow
from src.monitor.stats import MonitorStats
from src.shared.timeutil import bucket_start, format_ts, parse_ts

log = logging.getLogger(__name__)


class _Series:
    """Windows for one rule.  Callers must hold ``lock``."""

    __slots__ = ("rule", "windows", "lock", "clock_start")

    def __init__(self, rule: AlertRule) -> None:
        self.rule = rule
        self.windows: dict[datetime, TimeWindow] = {}
        self.lock = threading.Lock()
        # bucket of the latest evaluation; None until the first snapshot
        self.clock_start: datetime | None = None

    @property
    def size(self) -> timedelta:
        return self.rule.window

    def advance(self, current: datetime) -> None:
        """Move the evaluation clock to *current*, retiring evaluated windows."""
        if self.clock_start is None or current > self.clock_start:
            self.clock_start = current
        floor = self.clock_start - self.size
        for ws in [s for s in self.windows if s < floor]:
            del self.windows[ws]


class WindowAggregator:
    """Counts matching events into per-rule windows.

    ``record`` and ``snapshot`` take the series lock, so ingestion from
    several threads never loses an increment or observes a torn count.
    """

    def __init__(self, stats: MonitorStats | None = None) -> None:
        self._series: dict[str, _Series] = {}
        self._registry_lock = threading.Lock()
        self.stats = stats or MonitorStats()

    # ═══════════════════════════════════════════════════════════════════
    #  Registration
    # ═══════════════════════════════════════════════════════════════════

    def register(self, rule: AlertRule) -> None:
        with self._registry_lock:
            if rule.name in self._series:
                log.debug("Series %s already registered — replaced", rule.name)
            self._series[rule.name] = _Series(rule)
        log.debug(
            "Registered series %s pattern=%r mode=%s window=%ss",
            rule.name, rule.pattern, rule.match_mode.value, int(rule.window.total_seconds()),
        )

    def unregister(self, rule_name: str) -> None:
        with self._registry_lock:
            self._series.pop(rule_name, None)

    def series_names(self) -> list[str]:
        with self._registry_lock:
            return list(self._series)

    def _get(self, rule_name: str) -> _Series:
        with self._registry_lock:
            series = self._series.get(rule_name)
        if series is None:
            raise EvaluationError(f"no series registered for rule '{rule_name}'", rule_name)
        return series

    # ═══════════════════════════════════════════════════════════════════
    #  Write path
    # ═══════════════════════════════════════════════════════════════════

    def record(self, event: AccessEvent) -> int:
        """Count *event* into every series whose pattern matches its path.

        Returns the number of series the event was counted in.
        """
        with self._registry_lock:
            series_list = list(self._series.values())

        counted = 0
        for series in series_list:
            if not series.rule.matches(event.path):
                continue
            start = bucket_start(event.timestamp, series.size)
            with series.lock:
                clock = series.clock_start
                if clock is not None and start < clock - series.size:
                    self.stats.incr("events_late")
                    log.debug(
                        "Late event for %s at %s dropped (evaluation clock at %s)",
                        series.rule.name, format_ts(event.timestamp), format_ts(clock),
                    )
                    continue
                window = series.windows.get(start)
                if window is None:
                    window = TimeWindow(
                        start=start,
                        end=start + series.size,
                        pattern=series.rule.pattern,
                    )
                    series.windows[start] = window
                    self.stats.incr("windows_opened")
                window.count += 1
            counted += 1

        if counted:
            self.stats.incr("events_matched")
        return counted

    # ═══════════════════════════════════════════════════════════════════
    #  Read path
    # ═══════════════════════════════════════════════════════════════════

    def snapshot(self, rule_name: str, now: datetime) -> TimeWindow:
        """Most recently completed window relative to *now*.

        A window with no recorded events is returned with ``count=0``.

        Raises:
            EvaluationError: unknown rule, or *now* falls in a window before
                the one of the previous snapshot (clock went backwards).
        """
        series = self._get(rule_name)
        now = parse_ts(now)
        current = bucket_start(now, series.size)
        completed = current - series.size

        with series.lock:
            if series.clock_start is not None and current < series.clock_start:
                raise EvaluationError(
                    f"clock anomaly: now={format_ts(now)} is behind evaluated window "
                    f"{format_ts(series.clock_start)}",
                    rule_name,
                )
            series.advance(current)
            window = series.windows.get(completed)
            count = window.count if window is not None else 0

        return TimeWindow(
            start=completed,
            end=current,
            pattern=series.rule.pattern,
            count=count,
        )

    def current(self, rule_name: str, now: datetime) -> TimeWindow:
        """The in-progress window containing *now* (no retirement side effects)."""
        series = self._get(rule_name)
        start = bucket_start(now, series.size)
        with series.lock:
            window = series.windows.get(start)
            count = window.count if window is not None else 0
        return TimeWindow(start=start, end=start + series.size, pattern=series.rule.pattern, count=count)

    def retained(self, rule_name: str) -> list[TimeWindow]:
        """Copies of the windows currently held for *rule_name*, oldest first."""
        series = self._get(rule_name)
        with series.lock:
            return [
                TimeWindow(start=w.start, end=w.end, pattern=w.pattern, count=w.count)
                for _, w in sorted(series.windows.items())
            ]

    def clear(self) -> None:
        with self._registry_lock:
            series_list = list(self._series.values())
        for series in series_list:
            with series.lock:
                series.windows.clear()
                series.clock_start = None
