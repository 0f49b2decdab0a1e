"""Canonical enumerations for the monitoring contracts."""

from __future__ import annotations

from enum import Enum


class Operator(str, Enum):
    """Threshold comparison operators (Azure Monitor naming)."""

    GREATER_THAN = "GreaterThan"
    GREATER_THAN_OR_EQUAL = "GreaterThanOrEqual"
    LESS_THAN = "LessThan"
    LESS_THAN_OR_EQUAL = "LessThanOrEqual"
    EQUAL = "Equal"

    @classmethod
    def parse(cls, raw: str) -> Operator:
        """Accept either the Azure name (any case) or a symbol like ``>=``."""
        text = str(raw).strip()
        if text in _SYMBOLS:
            return _SYMBOLS[text]
        for op in cls:
            if op.value.lower() == text.lower():
                return op
        raise ValueError(f"unknown operator '{raw}'")

    def holds(self, observed: int, threshold: int) -> bool:
        if self is Operator.GREATER_THAN:
            return observed > threshold
        if self is Operator.GREATER_THAN_OR_EQUAL:
            return observed >= threshold
        if self is Operator.LESS_THAN:
            return observed < threshold
        if self is Operator.LESS_THAN_OR_EQUAL:
            return observed <= threshold
        return observed == threshold


_SYMBOLS: dict[str, Operator] = {
    ">": Operator.GREATER_THAN,
    ">=": Operator.GREATER_THAN_OR_EQUAL,
    "<": Operator.LESS_THAN,
    "<=": Operator.LESS_THAN_OR_EQUAL,
    "==": Operator.EQUAL,
}


class MatchMode(str, Enum):
    CONTAINS = "contains"
    EXACT = "exact"
    PREFIX = "prefix"
    REGEX = "regex"


class AlertStatus(str, Enum):
    NORMAL = "normal"
    FIRING = "firing"


class Transition(str, Enum):
    NONE = "none"
    FIRED = "fired"
    MITIGATED = "mitigated"
