"""AccessEvent — one logged HTTP request to a monitored path."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

from src.shared.timeutil import format_ts, parse_ts

# Column order for CSV access logs
CSV_COLUMNS: list[str] = ["timestamp", "path"]


@dataclass(frozen=True, slots=True)
class AccessEvent:
    """Immutable access record pushed by the external request source."""

    timestamp: datetime  # aware UTC
    path: str
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", parse_ts(self.timestamp))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    # ── serialisation ─────────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> AccessEvent:
        """Build from the inbound shape ``{timestamp, path, metadata}``.

        Unknown top-level keys are folded into metadata so that flat log
        lines (``{"timestamp": ..., "path": ..., "status": 200}``) keep their
        extra columns.

        Raises:
            KeyError: timestamp or path missing.
            ValueError: timestamp unparseable.
        """
        ts = row.get("timestamp")
        if ts is None or ts == "":
            raise KeyError("timestamp")
        path = row.get("path")
        if path is None:
            raise KeyError("path")
        meta: dict[str, Any] = dict(row.get("metadata") or {})
        for k, v in row.items():
            if k not in ("timestamp", "path", "metadata"):
                meta.setdefault(k, v)
        return cls(timestamp=parse_ts(ts), path=str(path), metadata=meta)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_ts(self.timestamp),
            "path": self.path,
            "metadata": dict(self.metadata),
        }

    def to_json(self) -> str:
        """Return compact JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"), default=str)
