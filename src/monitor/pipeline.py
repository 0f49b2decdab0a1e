"""Pipeline — replay a recorded access log, or watch a live one.

Replay
    Loads the whole log, then drives the engine with a simulated clock:
    before each tick at instant *t*, every event with timestamp < *t* is
    ingested.  Ticks run from the first event until every window that
    contains an event has been evaluated.  Long idle stretches between
    events are jumped over once every rule has settled.

Watch
    Tails a JSONL access log, pushes new lines into the engine and lets
    the background scheduler evaluate on wall-clock time.  Runs until
    Ctrl+C / SIGTERM or until *stop_event* is set.
"""

from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from src.monitor.engine import MonitorEngine
from src.monitor.reporter import write_notifications_csv, write_report_txt
from src.monitor.rules import load_config, tick_interval
from src.monitor.sinks import NotificationSink, build_sink
from src.monitor.sources import JsonlTail, load_access_log
from src.shared.timeutil import bucket_start, format_ts

log = logging.getLogger(__name__)


def _write_outputs(engine: MonitorEngine, out_dir: str) -> None:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    write_notifications_csv(list(engine.dispatcher.history), str(out / "notifications.csv"))
    write_report_txt(engine.status(), str(out / "report.txt"))


# ═══════════════════════════════════════════════════════════════════════════
#  Replay
# ═══════════════════════════════════════════════════════════════════════════


def replay(
    engine: MonitorEngine,
    records: list[dict[str, Any]],
    interval: timedelta | None = None,
) -> int:
    """Feed *records* (sorted by timestamp) through *engine* on a simulated clock.

    Returns the number of ticks run.
    """
    timed = [r for r in records if isinstance(r.get("timestamp"), datetime)]
    untimed = [r for r in records if not isinstance(r.get("timestamp"), datetime)]
    if untimed:
        engine.ingest_many(untimed)
    if not timed:
        log.warning("Replay: no records with a valid timestamp")
        return 0

    step = interval or timedelta(seconds=tick_interval(engine.rules))
    enabled = [r for r in engine.rules if r.enabled] or engine.rules
    # after this long without events the window holding the last one and
    # the empty window after it have both been evaluated, so every rule
    # has settled and idle ticks cannot change its state
    horizon = max(
        (2 * r.window + r.frequency * r.min_failing_periods for r in enabled), default=step
    )

    t = bucket_start(timed[0]["timestamp"], step) + step
    end = timed[-1]["timestamp"] + horizon + step
    i = 0
    ticks = 0
    while t <= end:
        while i < len(timed) and timed[i]["timestamp"] < t:
            engine.ingest(timed[i])
            i += 1
        if i and i < len(timed) and t > timed[i - 1]["timestamp"] + horizon + step:
            gap_end = bucket_start(timed[i]["timestamp"], step)
            if gap_end > t:
                log.info("Replay: idle from %s, skipping to %s", format_ts(t), format_ts(gap_end))
                t = gap_end
                continue
        engine.tick(t)
        ticks += 1
        t += step

    log.info(
        "Replay finished: %d records, %d ticks (%s .. %s)",
        len(records), ticks, format_ts(timed[0]["timestamp"]), format_ts(t - step),
    )
    return ticks


def run_replay(
    input_path: str,
    config_path: str = "config/rules.yaml",
    out_dir: str = "out",
    sink: NotificationSink | None = None,
) -> dict[str, Any]:
    """Replay *input_path* against the rules in *config_path* and write outputs.

    Returns
    -------
    dict with keys: notifications, status, ticks.
    """
    rules, sinks_cfg = load_config(config_path)
    delivery = sink if sink is not None else build_sink(sinks_cfg)
    engine = MonitorEngine(rules, delivery, max_future_skew=None)

    records = load_access_log(input_path)
    ticks = replay(engine, records)

    engine.stats.log_summary()
    _write_outputs(engine, out_dir)
    notifications = [d.notification for d in engine.dispatcher.history]
    return {"notifications": notifications, "status": engine.status(), "ticks": ticks}


# ═══════════════════════════════════════════════════════════════════════════
#  Watch mode (tail JSONL)
# ═══════════════════════════════════════════════════════════════════════════


def run_watch(
    input_path: str,
    config_path: str = "config/rules.yaml",
    out_dir: str = "out",
    poll_interval_sec: float = 1.0,
    from_start: bool = False,
    tick_interval_sec: float | None = None,
    stop_event: threading.Event | None = None,
) -> MonitorEngine:
    """Tail *input_path* and evaluate rules on wall-clock time until stopped."""
    rules, sinks_cfg = load_config(config_path)
    engine = MonitorEngine(rules, build_sink(sinks_cfg))
    tail = JsonlTail(input_path, from_start=from_start)
    stop = stop_event or threading.Event()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, lambda *_: stop.set())

    engine.start(tick_interval_sec)
    log.info("Watching %s (poll %.1fs, %d rules)", input_path, poll_interval_sec, len(rules))
    try:
        while not stop.is_set():
            records = tail.poll()
            if records:
                accepted = engine.ingest_many(records)
                log.debug("Watch: +%d lines, %d accepted", len(records), accepted)
            stop.wait(poll_interval_sec)
    except KeyboardInterrupt:
        log.info("Interrupted")
    finally:
        engine.stop()
        _write_outputs(engine, out_dir)
    return engine
