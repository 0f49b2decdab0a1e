"""Shared fixtures for Access Monitor tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from src.contracts.enums import MatchMode, Operator
from src.contracts.event import AccessEvent
from src.contracts.notification import Notification
from src.contracts.rule import AlertRule
from src.monitor.engine import MonitorEngine
from src.monitor.sinks import MemorySink

# 10:00 is a 5-minute boundary
BASE = datetime(2026, 2, 26, 10, 0, 0, tzinfo=UTC)

# ── Helpers ─────────────────────────────────────────────────────────────


def at(minutes: float = 0, seconds: float = 0) -> datetime:
    """Instant offset from BASE."""
    return BASE + timedelta(minutes=minutes, seconds=seconds)


def make_event(
    *,
    timestamp: datetime | None = None,
    path: str = "/api/getresume",
    metadata: dict[str, Any] | None = None,
) -> AccessEvent:
    return AccessEvent(
        timestamp=timestamp or BASE,
        path=path,
        metadata=metadata or {},
    )


def make_rule(
    *,
    name: str = "resume-accessed",
    pattern: str = "/api/getresume",
    threshold: int = 0,
    operator: Operator = Operator.GREATER_THAN,
    window_min: float = 5,
    frequency_min: float = 1,
    min_failing_periods: int = 1,
    auto_mitigate: bool = True,
    match_mode: MatchMode = MatchMode.CONTAINS,
    recipient: str = "owner@example.com",
    cooldown_sec: float = 0,
    enabled: bool = True,
) -> AlertRule:
    return AlertRule(
        name=name,
        pattern=pattern,
        threshold=threshold,
        operator=operator,
        window=timedelta(minutes=window_min),
        frequency=timedelta(minutes=frequency_min),
        min_failing_periods=min_failing_periods,
        auto_mitigate=auto_mitigate,
        match_mode=match_mode,
        recipient=recipient,
        cooldown=timedelta(seconds=cooldown_sec),
        enabled=enabled,
    )


def make_notification(**overrides: Any) -> Notification:
    fields: dict[str, Any] = {
        "rule": "resume-accessed",
        "fired_at": at(5),
        "observed_count": 3,
        "recipient": "owner@example.com",
        "severity": 3,
        "window_start": at(0),
        "window_end": at(5),
        "description": "test",
    }
    fields.update(overrides)
    return Notification(**fields)


class FailingSink:
    """Sink that raises on every send."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or ConnectionError("smtp down")
        self.calls = 0

    def send(self, notification: Notification) -> bool:
        self.calls += 1
        raise self.exc


class FalseSink:
    """Sink that reports failure without raising."""

    def __init__(self) -> None:
        self.calls = 0

    def send(self, notification: Notification) -> bool:
        self.calls += 1
        return False


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def rule() -> AlertRule:
    return make_rule()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def engine(rule, sink) -> MonitorEngine:
    return MonitorEngine([rule], sink)
