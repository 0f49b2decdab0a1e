"""MonitorEngine — wires ingestor, aggregator, evaluator and dispatcher.

The engine owns the AlertState mapping and the shared MonitorStats, so two
engines built from the same rules never interfere with each other.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from src.contracts.event import AccessEvent
from src.contracts.rule import AlertRule
from src.contracts.state import AlertState
from src.monitor.aggregator import WindowAggregator
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.evaluator import Evaluation, RuleEvaluator
from src.monitor.ingestor import DEFAULT_MAX_FUTURE_SKEW, LogIngestor
from src.monitor.rules import tick_interval
from src.monitor.scheduler import TickScheduler
from src.monitor.sinks import NotificationSink
from src.monitor.stats import MonitorStats
from src.shared.timeutil import format_ts, utcnow

log = logging.getLogger(__name__)


class MonitorEngine:
    def __init__(
        self,
        rules: Iterable[AlertRule],
        sink: NotificationSink | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_future_skew: timedelta | None = DEFAULT_MAX_FUTURE_SKEW,
    ) -> None:
        self.rules = list(rules)
        self.stats = MonitorStats()
        self.states: dict[str, AlertState] = {}
        self.aggregator = WindowAggregator(self.stats)
        for rule in self.rules:
            if rule.enabled:
                self.aggregator.register(rule)
        self.ingestor = LogIngestor(self.aggregator, self.stats, clock, max_future_skew)
        self.dispatcher = AlertDispatcher(sink, self.stats)
        self.evaluator = RuleEvaluator(
            self.rules, self.aggregator, self.dispatcher, self.states, self.stats
        )
        self._clock = clock
        self._scheduler: TickScheduler | None = None

    # ── push side ────────────────────────────────────────────────────────

    def ingest(self, record: AccessEvent | Mapping[str, Any]) -> bool:
        return self.ingestor.ingest(record)

    def ingest_many(self, records: Iterable[AccessEvent | Mapping[str, Any]]) -> int:
        return self.ingestor.ingest_many(records)

    # ── evaluation side ──────────────────────────────────────────────────

    def tick(self, now: datetime | None = None) -> list[Evaluation]:
        return self.evaluator.tick(now if now is not None else self._clock())

    def start(self, interval_sec: float | None = None) -> TickScheduler:
        """Start the background evaluation loop (finest rule frequency by default)."""
        if self._scheduler is None:
            self._scheduler = TickScheduler(
                self.tick,
                interval_sec or tick_interval(self.rules),
                stats=self.stats,
                clock=self._clock,
            )
        self._scheduler.start()
        return self._scheduler

    def stop(self, timeout: float | None = None) -> None:
        if self._scheduler is not None:
            self._scheduler.stop(timeout)
        self.stats.log_summary()

    def reset(self) -> None:
        """Drop windows, states and counters."""
        self.aggregator.clear()
        self.evaluator.reset()
        self.stats.reset()

    # ── inspection ───────────────────────────────────────────────────────

    def status(self) -> dict[str, Any]:
        """Per-rule state plus stage counters, for logging or reports."""
        rules = {}
        for name, st in self.states.items():
            rules[name] = {
                "status": st.status.value,
                "consecutive_periods": st.consecutive_periods,
                "last_count": st.last_count,
                "last_evaluated": format_ts(st.last_evaluated) if st.last_evaluated else "",
                "last_fired": format_ts(st.last_fired) if st.last_fired else "",
                "transitions": st.transitions,
            }
        return {"rules": rules, "stats": self.stats.snapshot()}
