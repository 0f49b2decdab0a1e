"""AlertRule — immutable alert rule configuration."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta

from src.contracts.enums import MatchMode, Operator

DEFAULT_WINDOW = timedelta(minutes=5)
DEFAULT_FREQUENCY = timedelta(minutes=1)


@dataclass(frozen=True, slots=True)
class AlertRule:
    """What to match, when to fire, who to tell.

    Defaults mirror a scheduled-query alert that fires on any hit:
    ``count > 0`` over 5 minutes, evaluated every minute, one failing
    period, auto-mitigated.
    """

    name: str
    pattern: str
    threshold: int = 0
    operator: Operator = Operator.GREATER_THAN
    window: timedelta = DEFAULT_WINDOW
    frequency: timedelta = DEFAULT_FREQUENCY
    min_failing_periods: int = 1
    auto_mitigate: bool = True
    match_mode: MatchMode = MatchMode.CONTAINS
    recipient: str = ""
    severity: int = 3  # 0 = critical … 4 = verbose
    description: str = ""
    cooldown: timedelta = timedelta(0)
    enabled: bool = True
    _regex: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("rule name must not be empty")
        if not self.pattern:
            raise ValueError(f"rule '{self.name}': pattern must not be empty")
        if self.window <= timedelta(0):
            raise ValueError(f"rule '{self.name}': window must be positive")
        if self.frequency <= timedelta(0):
            raise ValueError(f"rule '{self.name}': frequency must be positive")
        if self.window < self.frequency:
            # windows between two evaluations would never be looked at
            raise ValueError(
                f"rule '{self.name}': window ({self.window}) must not be shorter "
                f"than frequency ({self.frequency})"
            )
        if self.min_failing_periods < 1:
            raise ValueError(f"rule '{self.name}': min_failing_periods must be >= 1")
        if self.cooldown < timedelta(0):
            raise ValueError(f"rule '{self.name}': cooldown must not be negative")
        if self.match_mode is MatchMode.REGEX:
            try:
                object.__setattr__(self, "_regex", re.compile(self.pattern))
            except re.error as exc:
                raise ValueError(f"rule '{self.name}': bad regex: {exc}") from exc

    def matches(self, path: str) -> bool:
        """Apply the rule's match mode to a request path."""
        if self.match_mode is MatchMode.CONTAINS:
            # KQL ``contains`` is case-insensitive
            return self.pattern.lower() in path.lower()
        if self.match_mode is MatchMode.EXACT:
            return path == self.pattern
        if self.match_mode is MatchMode.PREFIX:
            return path.startswith(self.pattern)
        return self._regex is not None and self._regex.search(path) is not None

    def predicate(self, observed: int) -> bool:
        return self.operator.holds(observed, self.threshold)
