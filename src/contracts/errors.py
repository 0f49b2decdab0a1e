"""Error taxonomy shared by every stage of the monitor.

Only ``ConfigError`` is allowed to stop the process, and only at startup.
The others are caught at stage boundaries, logged and counted.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all monitor errors."""


class ConfigError(MonitorError):
    """Invalid rule or sink configuration."""


class IngestionError(MonitorError):
    """A pushed record could not be turned into an AccessEvent."""


class EvaluationError(MonitorError):
    """A rule could not be evaluated on this tick (aggregator or clock problem)."""

    def __init__(self, message: str, rule_name: str = "") -> None:
        super().__init__(message)
        self.rule_name = rule_name


class DispatchError(MonitorError):
    """The notification sink failed to deliver."""

    def __init__(self, message: str, rule_name: str = "") -> None:
        super().__init__(message)
        self.rule_name = rule_name
