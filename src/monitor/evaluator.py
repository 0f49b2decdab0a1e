"""Rule Evaluator — scheduled threshold evaluation and the alert state machine.

State machine per rule
──────────────────────
  Normal ──(predicate held for min_failing_periods ticks)──▶ Firing   dispatch
  Firing ──(predicate fails, auto_mitigate on)────────────▶ Normal   no dispatch

Both edges fire only on the transition, never while a state is sustained.
Each rule is evaluated at its own ``frequency``; a tick only touches the
rules that are due.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from src.contracts.enums import Transition
from src.contracts.errors import EvaluationError
from src.contracts.rule import AlertRule
from src.contracts.state import AlertState, TimeWindow
from src.monitor.aggregator import WindowAggregator
from src.monitor.dispatcher import AlertDispatcher
from src.monitor.stats import MonitorStats
from src.shared.timeutil import format_ts, parse_ts

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Evaluation:
    """Outcome of one rule on one tick."""

    rule: str
    at: datetime
    count: int
    predicate: bool
    consecutive_periods: int
    firing: bool
    transition: Transition = Transition.NONE
    window: TimeWindow | None = None


class RuleEvaluator:
    """Evaluates rules against the aggregator and drives AlertState.

    Parameters
    ──────────
    rules
        Immutable rule set, loaded once.
    aggregator
        Source of window counts; every rule must be registered on it.
    dispatcher
        Called on Normal→Firing.
    states
        Mapping rule name → AlertState.  Passed in so that separate rule
        sets (and tests) never share state; missing entries are created.
    """

    def __init__(
        self,
        rules: Iterable[AlertRule],
        aggregator: WindowAggregator,
        dispatcher: AlertDispatcher,
        states: dict[str, AlertState] | None = None,
        stats: MonitorStats | None = None,
    ) -> None:
        self.rules = [r for r in rules if r.enabled]
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.states: dict[str, AlertState] = states if states is not None else {}
        self.stats = stats or aggregator.stats
        for rule in self.rules:
            self.states.setdefault(rule.name, AlertState(rule_name=rule.name))

    # ═══════════════════════════════════════════════════════════════════
    #  Public API
    # ═══════════════════════════════════════════════════════════════════

    def tick(self, now: datetime) -> list[Evaluation]:
        """Evaluate every due rule at *now*.

        A failure in one rule is logged as an EvaluationError and does not
        stop the others; that rule is simply retried on the next tick.
        """
        now = parse_ts(now)
        self.stats.incr("ticks")
        results: list[Evaluation] = []
        for rule in self.rules:
            state = self.states[rule.name]
            if not self.is_due(rule, state, now):
                continue
            try:
                results.append(self.evaluate(rule, state, now))
            except EvaluationError as exc:
                self._report(exc)
            except Exception as exc:
                self._report(EvaluationError(f"{type(exc).__name__}: {exc}", rule.name))
        return results

    @staticmethod
    def is_due(rule: AlertRule, state: AlertState, now: datetime) -> bool:
        if state.last_evaluated is None or now < state.last_evaluated:
            # a clock moving backwards is surfaced by evaluate()
            return True
        return now - state.last_evaluated >= rule.frequency

    def evaluate(self, rule: AlertRule, state: AlertState, now: datetime) -> Evaluation:
        """Evaluate a single rule and apply the state transition."""
        if state.last_evaluated is not None and now < state.last_evaluated:
            raise EvaluationError(
                f"clock anomaly: tick at {format_ts(now)} is before last evaluation "
                f"{format_ts(state.last_evaluated)}",
                rule.name,
            )

        window = self.aggregator.snapshot(rule.name, now)
        count = window.count
        held = rule.predicate(count)

        state.last_evaluated = now
        state.last_count = count
        self.stats.incr("evaluations")

        if held:
            state.consecutive_periods += 1
            self.stats.incr("predicate_hits")
        else:
            state.consecutive_periods = 0

        transition = Transition.NONE
        if held and not state.firing and state.consecutive_periods >= rule.min_failing_periods:
            transition = Transition.FIRED
            state.firing = True
            state.last_fired = now
            state.transitions += 1
            self.stats.incr("fired")
            log.warning(
                "Alert %s FIRING: count=%d %s %d over %s..%s",
                rule.name, count, rule.operator.value, rule.threshold,
                format_ts(window.start), format_ts(window.end),
            )
            self.dispatcher.fire(rule, state, count, window)
        elif not held and state.firing and rule.auto_mitigate:
            transition = Transition.MITIGATED
            state.firing = False
            self.stats.incr("mitigated")
            log.info("Alert %s resolved: count=%d", rule.name, count)
        else:
            log.debug(
                "Rule %s count=%d predicate=%s periods=%d firing=%s",
                rule.name, count, held, state.consecutive_periods, state.firing,
            )

        return Evaluation(
            rule=rule.name,
            at=now,
            count=count,
            predicate=held,
            consecutive_periods=state.consecutive_periods,
            firing=state.firing,
            transition=transition,
            window=window,
        )

    def reset(self) -> None:
        """Forget all firing state (as a process restart would)."""
        for rule in self.rules:
            self.states[rule.name] = AlertState(rule_name=rule.name)
        self.dispatcher.reset()

    def _report(self, exc: EvaluationError) -> None:
        self.stats.incr("evaluation_errors")
        self.stats.record_error("evaluate", exc, rule=exc.rule_name)
        log.error("Evaluation of %s skipped: %s", exc.rule_name or "?", exc)
