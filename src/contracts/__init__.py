"""Monitor contracts — data structures shared by all stages."""

from src.contracts.enums import AlertStatus, MatchMode, Operator, Transition
from src.contracts.errors import (
    ConfigError,
    DispatchError,
    EvaluationError,
    IngestionError,
    MonitorError,
)
from src.contracts.event import AccessEvent
from src.contracts.notification import Notification
from src.contracts.rule import AlertRule
from src.contracts.state import AlertState, TimeWindow

__all__ = [
    "AccessEvent",
    "AlertRule",
    "AlertState",
    "AlertStatus",
    "ConfigError",
    "DispatchError",
    "EvaluationError",
    "IngestionError",
    "MatchMode",
    "MonitorError",
    "Notification",
    "Operator",
    "TimeWindow",
    "Transition",
]
