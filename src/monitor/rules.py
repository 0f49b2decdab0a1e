"""Rule loader — parse ``config/rules.yaml`` into AlertRule objects.

Config shape
────────────
    rules:
      - name: resume-accessed
        pattern: /api/getresume
        match: contains            # contains | exact | prefix | regex
        threshold: 0
        operator: GreaterThan      # or >, >=, <, <=, ==
        window: PT5M               # ISO-8601, "5m", or window_sec: 300
        frequency: PT1M
        min_failing_periods: 1
        auto_mitigate: true
        recipient: ${ALERT_EMAIL}
        severity: 3
        cooldown: 0
    sinks:
      - type: log

``${VAR}`` and ``${VAR:-default}`` references in string values are expanded
from the environment at load time.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

from src.contracts.enums import MatchMode, Operator
from src.contracts.errors import ConfigError
from src.contracts.rule import DEFAULT_FREQUENCY, DEFAULT_WINDOW, AlertRule
from src.shared.config_loader import load_yaml

log = logging.getLogger(__name__)

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")
_ISO_DURATION = re.compile(
    r"^P(?:(?P<d>\d+)D)?(?:T(?:(?P<h>\d+)H)?(?:(?P<m>\d+)M)?(?:(?P<s>\d+)S)?)?$",
    re.IGNORECASE,
)
_SHORT_DURATION = re.compile(r"^(?P<n>\d+)\s*(?P<u>s|m|h|d)$", re.IGNORECASE)
_UNIT_SEC = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def expand_env(value: Any) -> Any:
    """Recursively expand ``${VAR}`` references in strings."""
    if isinstance(value, str):
        def _sub(m: re.Match[str]) -> str:
            return os.environ.get(m.group(1), m.group(2) if m.group(2) is not None else "")
        return _ENV_REF.sub(_sub, value)
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    return value


def parse_duration(value: Any) -> timedelta:
    """Accept seconds (int/float), ``"5m"``-style or ISO-8601 (``PT5M``)."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"bad duration {value!r}")
    if isinstance(value, int | float):
        return timedelta(seconds=value)
    text = str(value).strip()
    if text.isdigit():
        return timedelta(seconds=int(text))
    m = _SHORT_DURATION.match(text)
    if m:
        return timedelta(seconds=int(m.group("n")) * _UNIT_SEC[m.group("u").lower()])
    m = _ISO_DURATION.match(text)
    if m and text.upper() not in ("P", "PT"):
        return timedelta(
            days=int(m.group("d") or 0),
            hours=int(m.group("h") or 0),
            minutes=int(m.group("m") or 0),
            seconds=int(m.group("s") or 0),
        )
    raise ValueError(f"bad duration {value!r}")


def _duration(raw: dict[str, Any], key: str, default: timedelta) -> timedelta:
    if f"{key}_sec" in raw:
        return parse_duration(raw[f"{key}_sec"])
    if key in raw:
        return parse_duration(raw[key])
    return default


def parse_rule(raw: dict[str, Any]) -> AlertRule:
    """Build one AlertRule from its config mapping.

    Raises:
        ConfigError: missing or invalid fields.
    """
    name = raw.get("name") or raw.get("id")
    if not name:
        raise ConfigError(f"rule without name: {raw!r}")
    try:
        return AlertRule(
            name=str(name),
            pattern=str(raw.get("pattern", "")),
            threshold=int(raw.get("threshold", 0)),
            operator=Operator.parse(raw.get("operator", Operator.GREATER_THAN.value)),
            window=_duration(raw, "window", DEFAULT_WINDOW),
            frequency=_duration(raw, "frequency", DEFAULT_FREQUENCY),
            min_failing_periods=int(raw.get("min_failing_periods", 1)),
            auto_mitigate=bool(raw.get("auto_mitigate", True)),
            match_mode=MatchMode(str(raw.get("match", MatchMode.CONTAINS.value)).lower()),
            recipient=str(raw.get("recipient", "") or ""),
            severity=int(raw.get("severity", 3)),
            description=str(raw.get("description", "") or ""),
            cooldown=_duration(raw, "cooldown", timedelta(0)),
            enabled=bool(raw.get("enabled", True)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"rule '{name}': {exc}") from exc


def parse_rules(cfg: dict[str, Any]) -> list[AlertRule]:
    """Parse the ``rules:`` section; names must be unique."""
    raw_rules = cfg.get("rules") or []
    if not isinstance(raw_rules, list):
        raise ConfigError("'rules' must be a list")
    rules = [parse_rule(expand_env(r)) for r in raw_rules]
    seen: set[str] = set()
    for r in rules:
        if r.name in seen:
            raise ConfigError(f"duplicate rule name '{r.name}'")
        seen.add(r.name)
    return rules


def load_config(path: str | Path) -> tuple[list[AlertRule], list[dict[str, Any]]]:
    """Load rules and sink definitions from a YAML file.

    Returns:
        (rules, sinks_cfg) — sinks_cfg already env-expanded.
    """
    cfg = load_yaml(path)
    rules = parse_rules(cfg)
    sinks_cfg = expand_env(cfg.get("sinks") or [])
    if not isinstance(sinks_cfg, list):
        raise ConfigError("'sinks' must be a list")
    enabled = [r for r in rules if r.enabled]
    log.info(
        "Loaded %d rules (%d enabled) and %d sinks from %s",
        len(rules), len(enabled), len(sinks_cfg), path,
    )
    return rules, sinks_cfg


def tick_interval(rules: list[AlertRule]) -> float:
    """Scheduler interval: the finest evaluation frequency among enabled rules."""
    freqs = [r.frequency.total_seconds() for r in rules if r.enabled]
    return min(freqs) if freqs else DEFAULT_FREQUENCY.total_seconds()
