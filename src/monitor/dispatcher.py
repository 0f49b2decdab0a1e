"""Alert Dispatcher — Firing transition → one outbound Notification.

Delivery failures are reported, never rolled back: the rule stays Firing
even if the email did not go out.  The failure is visible in the log, in
``MonitorStats`` and in ``DispatchError`` records.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from src.contracts.errors import DispatchError
from src.contracts.notification import Notification
from src.contracts.rule import AlertRule
from src.contracts.state import AlertState, TimeWindow
from src.monitor.sinks import LogSink, NotificationSink
from src.monitor.stats import MonitorStats
from src.shared.timeutil import format_ts

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Delivery:
    """A notification together with the outcome of handing it to the sink."""

    notification: Notification
    delivered: bool


class AlertDispatcher:
    """Edge-triggered, de-duplicated delivery.

    At most one notification per Normal→Firing transition: the dispatcher
    remembers the last ``state.transitions`` value it handled per rule.
    A per-rule ``cooldown`` additionally suppresses a new transition's
    notification when the previous one went out less than ``cooldown`` ago.
    """

    def __init__(
        self,
        sink: NotificationSink | None = None,
        stats: MonitorStats | None = None,
    ) -> None:
        self.sink = sink or LogSink()
        self.stats = stats or MonitorStats()
        self._handled: dict[str, int] = {}
        self._last_sent: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self.history: list[Delivery] = []

    def fire(
        self,
        rule: AlertRule,
        state: AlertState,
        observed_count: int,
        window: TimeWindow | None = None,
    ) -> Notification | None:
        """Build and deliver the notification for the current transition.

        Returns the Notification (even if delivery failed), or None when it
        was suppressed as a duplicate or by cooldown.
        """
        fired_at = state.last_fired
        if fired_at is None:
            raise ValueError(f"rule '{rule.name}' fired without last_fired set")

        with self._lock:
            if self._handled.get(rule.name) == state.transitions:
                self.stats.incr("dispatch_suppressed")
                log.debug("Duplicate dispatch for %s transition %d suppressed", rule.name, state.transitions)
                return None
            self._handled[rule.name] = state.transitions

            last = self._last_sent.get(rule.name)
            if rule.cooldown and last is not None and fired_at - last < rule.cooldown:
                self.stats.incr("dispatch_suppressed")
                log.info(
                    "Alert %s in cooldown (last sent %s, cooldown %ss) — not notifying",
                    rule.name, format_ts(last), int(rule.cooldown.total_seconds()),
                )
                return None
            self._last_sent[rule.name] = fired_at

        notification = Notification(
            rule=rule.name,
            fired_at=fired_at,
            observed_count=observed_count,
            recipient=rule.recipient,
            severity=rule.severity,
            window_start=window.start if window else None,
            window_end=window.end if window else None,
            description=rule.description,
        )
        delivered = self._deliver(notification)
        with self._lock:
            self.history.append(Delivery(notification, delivered))
        return notification

    def _deliver(self, notification: Notification) -> bool:
        try:
            delivered = self.sink.send(notification)
        except Exception as exc:
            self._report(DispatchError(f"sink raised {type(exc).__name__}: {exc}", notification.rule))
            return False
        if not delivered:
            self._report(DispatchError("sink reported delivery failure", notification.rule))
            return False
        self.stats.incr("dispatch_sent")
        log.info(
            "Notification sent rule=%s count=%d to=%s",
            notification.rule, notification.observed_count, notification.recipient or "-",
        )
        return True

    def _report(self, err: DispatchError) -> None:
        self.stats.incr("dispatch_failed")
        self.stats.record_error("dispatch", err, rule=err.rule_name)
        log.error("Dispatch failed for %s: %s (alert stays firing)", err.rule_name, err)

    def reset(self) -> None:
        with self._lock:
            self._handled.clear()
            self._last_sent.clear()
            self.history.clear()
