"""Per-stage counters so a missing notification can be traced to its stage.

Every stage (ingest, window, evaluation, dispatch) increments its own
counters here.  ``snapshot()`` returns a plain dict suitable for logging or
for the text report.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.shared.timeutil import format_ts, utcnow

log = logging.getLogger(__name__)

_MAX_RECENT_ERRORS = 50

STAT_KEYS = (
    "events_accepted",
    "events_rejected",
    "events_matched",
    "events_late",
    "windows_opened",
    "ticks",
    "ticks_skipped",
    "tick_failures",
    "evaluations",
    "evaluation_errors",
    "predicate_hits",
    "fired",
    "mitigated",
    "dispatch_sent",
    "dispatch_failed",
    "dispatch_suppressed",
)


@dataclass(slots=True)
class ErrorRecord:
    """One entry of the recent-errors ring buffer."""

    at: datetime
    stage: str
    kind: str
    message: str
    rule: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "at": format_ts(self.at),
            "stage": self.stage,
            "kind": self.kind,
            "message": self.message,
            "rule": self.rule,
        }


@dataclass
class MonitorStats:
    """Thread-safe counters shared by all stages of one engine."""

    counters: dict[str, int] = field(default_factory=lambda: dict.fromkeys(STAT_KEYS, 0))
    recent_errors: deque[ErrorRecord] = field(
        default_factory=lambda: deque(maxlen=_MAX_RECENT_ERRORS)
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def incr(self, key: str, n: int = 1) -> None:
        with self._lock:
            self.counters[key] = self.counters.get(key, 0) + n

    def get(self, key: str) -> int:
        with self._lock:
            return self.counters.get(key, 0)

    def record_error(self, stage: str, exc: BaseException, rule: str = "") -> None:
        rec = ErrorRecord(
            at=utcnow(),
            stage=stage,
            kind=type(exc).__name__,
            message=str(exc),
            rule=rule,
        )
        with self._lock:
            self.recent_errors.append(rec)

    def errors(self, kind: str | None = None) -> list[ErrorRecord]:
        with self._lock:
            items = list(self.recent_errors)
        if kind is None:
            return items
        return [e for e in items if e.kind == kind]

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            data: dict[str, Any] = dict(self.counters)
            data["recent_errors"] = [e.to_dict() for e in self.recent_errors]
        return data

    def reset(self) -> None:
        with self._lock:
            self.counters = dict.fromkeys(STAT_KEYS, 0)
            self.recent_errors.clear()

    def log_summary(self) -> None:
        c = self.snapshot()
        log.info(
            "Stats ingest=%d rejected=%d late=%d windows=%d evals=%d hits=%d "
            "fired=%d mitigated=%d sent=%d failed=%d suppressed=%d skipped_ticks=%d",
            c["events_accepted"], c["events_rejected"], c["events_late"],
            c["windows_opened"], c["evaluations"], c["predicate_hits"],
            c["fired"], c["mitigated"], c["dispatch_sent"], c["dispatch_failed"],
            c["dispatch_suppressed"], c["ticks_skipped"],
        )
