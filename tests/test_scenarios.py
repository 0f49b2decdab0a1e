"""End-to-end scenarios through MonitorEngine: ingest → window → evaluate → notify."""

from __future__ import annotations

import time

from src.contracts.enums import AlertStatus
from src.monitor.engine import MonitorEngine
from src.monitor.sinks import MemorySink
from tests.conftest import FailingSink, at, make_rule


def push(engine: MonitorEngine, minute: float, n: int, path: str = "/api/getresume") -> None:
    for i in range(n):
        engine.ingest({"timestamp": at(minute, i * 5).isoformat(), "path": path})


def run_ticks(
    engine: MonitorEngine,
    start_min: int,
    end_min: int,
    pushes: dict[int, int] | None = None,
) -> None:
    """Tick once a minute; before each tick push the hits scheduled for that minute."""
    for m in range(start_min, end_min + 1):
        if pushes and m in pushes:
            push(engine, m, pushes[m])
        engine.tick(at(m))


class TestScenarios:
    def test_three_hits_in_one_window_notify_once(self, engine, sink):
        for s in (30, 90, 200):
            engine.ingest({"timestamp": at(seconds=s).isoformat(), "path": "/api/getresume"})
        engine.tick(at(5))
        assert len(sink.notifications) == 1
        assert sink.notifications[0].observed_count == 3

    def test_no_hits_no_notification(self, engine, sink):
        push(engine, 1, 4, path="/api/health")
        run_ticks(engine, 1, 10)
        assert sink.notifications == []
        assert engine.states["resume-accessed"].status is AlertStatus.NORMAL

    def test_sustained_hits_over_three_windows_notify_once(self, engine, sink):
        run_ticks(engine, 1, 15, pushes={1: 2, 6: 2, 11: 2})
        assert len(sink.notifications) == 1
        assert sink.notifications[0].fired_at == at(5)
        assert engine.states["resume-accessed"].firing

    def test_mitigation_then_second_distinct_notification(self, engine, sink):
        run_ticks(engine, 1, 10, pushes={1: 2})  # fires at 10:05, clears at 10:10
        assert engine.states["resume-accessed"].status is AlertStatus.NORMAL
        run_ticks(engine, 11, 15, pushes={11: 3})
        assert [n.observed_count for n in sink.notifications] == [2, 3]
        assert sink.notifications[0].fired_at != sink.notifications[1].fired_at

    def test_sink_failure_keeps_firing_and_loop_continues(self, rule):
        failing = FailingSink()
        engine = MonitorEngine([rule], failing)
        push(engine, 1, 2)
        engine.tick(at(5))
        assert engine.states["resume-accessed"].firing
        assert engine.stats.get("dispatch_failed") == 1
        assert engine.stats.errors("DispatchError")
        results = engine.tick(at(6))
        assert len(results) == 1
        assert failing.calls == 1


class TestEngine:
    def test_one_future_dated_event_does_not_silence_rule(self, rule, sink):
        engine = MonitorEngine([rule], sink, max_future_skew=None)
        engine.ingest({"timestamp": at(24 * 60).isoformat(), "path": "/api/getresume"})
        run_ticks(engine, 1, 15, pushes={1: 1, 6: 1, 11: 1})
        assert len(sink.notifications) == 1
        assert sink.notifications[0].fired_at == at(5)
        assert engine.stats.get("events_late") == 0
        assert engine.stats.get("evaluation_errors") == 0

    def test_far_future_event_rejected_against_engine_clock(self, rule, sink):
        engine = MonitorEngine([rule], sink, clock=lambda: at(0))
        assert engine.ingest({"timestamp": at(4).isoformat(), "path": "/api/getresume"})
        assert not engine.ingest({"timestamp": at(24 * 60).isoformat(), "path": "/api/getresume"})
        assert engine.stats.get("events_rejected") == 1
        assert "in the future" in engine.stats.errors("IngestionError")[0].message

    def test_boundary_event_counted_in_next_window(self, engine, sink):
        engine.ingest({"timestamp": at(5).isoformat(), "path": "/api/getresume"})
        engine.tick(at(5))
        assert sink.notifications == []
        engine.tick(at(10))
        assert len(sink.notifications) == 1

    def test_malformed_records_do_not_break_engine(self, engine, sink):
        assert engine.ingest({"path": "/api/getresume"}) is False
        assert engine.ingest({"timestamp": "??", "path": "/api/getresume"}) is False
        push(engine, 1, 1)
        engine.tick(at(5))
        assert len(sink.notifications) == 1
        assert engine.stats.get("events_rejected") == 2

    def test_multiple_rules_independent(self):
        sink = MemorySink()
        engine = MonitorEngine(
            [make_rule(name="resume"), make_rule(name="admin", pattern="/admin", threshold=2)],
            sink,
        )
        push(engine, 1, 1)
        push(engine, 1, 2, path="/admin/login")
        engine.tick(at(5))
        assert [n.rule for n in sink.notifications] == ["resume"]

    def test_status_snapshot(self, engine):
        push(engine, 1, 2)
        engine.tick(at(5))
        status = engine.status()
        st = status["rules"]["resume-accessed"]
        assert st["status"] == "firing"
        assert st["last_count"] == 2
        assert st["last_fired"] == "2026-02-26T10:05:00Z"
        assert status["stats"]["events_accepted"] == 2
        assert status["stats"]["dispatch_sent"] == 1

    def test_reset(self, engine, sink):
        push(engine, 1, 2)
        engine.tick(at(5))
        engine.reset()
        assert engine.status()["rules"]["resume-accessed"]["status"] == "normal"
        assert engine.stats.get("events_accepted") == 0
        engine.tick(at(6))
        assert len(sink.notifications) == 1

    def test_tick_uses_injected_clock(self, rule, sink):
        engine = MonitorEngine([rule], sink, clock=lambda: at(5))
        push(engine, 1, 1)
        engine.tick()
        assert len(sink.notifications) == 1

    def test_background_loop(self, rule, sink):
        engine = MonitorEngine([rule], sink, clock=lambda: at(5))
        push(engine, 1, 1)
        engine.start(interval_sec=0.01)
        try:
            deadline = time.monotonic() + 2.0
            while not sink.notifications and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            engine.stop(timeout=2.0)
        assert len(sink.notifications) == 1
