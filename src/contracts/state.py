"""Mutable evaluation state and window snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from src.contracts.enums import AlertStatus


@dataclass(slots=True)
class TimeWindow:
    """One clock-aligned tumbling window ``[start, end)``."""

    start: datetime
    end: datetime
    pattern: str
    count: int = 0

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end


@dataclass(slots=True)
class AlertState:
    """Lifecycle of one rule: Normal ↔ Firing.

    Only the evaluator mutates this.  ``transitions`` counts Normal→Firing
    edges and is what the dispatcher keys de-duplication on.
    """

    rule_name: str
    last_fired: datetime | None = None
    consecutive_periods: int = 0
    firing: bool = False
    last_evaluated: datetime | None = None
    last_count: int | None = None
    transitions: int = 0

    @property
    def status(self) -> AlertStatus:
        return AlertStatus.FIRING if self.firing else AlertStatus.NORMAL
