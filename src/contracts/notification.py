"""Notification — what the dispatcher hands to a sink."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.shared.timeutil import format_ts

NOTIFICATION_CSV_COLUMNS = [
    "rule",
    "fired_at",
    "observed_count",
    "recipient",
    "severity",
    "window_start",
    "window_end",
    "description",
]


@dataclass(frozen=True, slots=True)
class Notification:
    """Immutable once created; never persisted beyond delivery."""

    rule: str
    fired_at: datetime
    observed_count: int
    recipient: str
    severity: int = 3
    window_start: datetime | None = None
    window_end: datetime | None = None
    description: str = ""

    @property
    def subject(self) -> str:
        return f"[Sev{self.severity}] Alert '{self.rule}' fired: {self.observed_count} hit(s)"

    def body(self) -> str:
        lines = [
            f"Rule:           {self.rule}",
            f"Fired at:       {format_ts(self.fired_at)}",
            f"Observed count: {self.observed_count}",
        ]
        if self.window_start is not None and self.window_end is not None:
            lines.append(
                f"Window:         {format_ts(self.window_start)} .. {format_ts(self.window_end)}"
            )
        if self.description:
            lines.append("")
            lines.append(self.description)
        return "\n".join(lines)

    # ── serialisation ────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "fired_at": format_ts(self.fired_at),
            "observed_count": self.observed_count,
            "recipient": self.recipient,
            "severity": self.severity,
            "window_start": format_ts(self.window_start) if self.window_start else "",
            "window_end": format_ts(self.window_end) if self.window_end else "",
            "description": self.description,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    def to_csv_row(self) -> str:
        d = self.to_dict()
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow([d[c] for c in NOTIFICATION_CSV_COLUMNS])
        return buf.getvalue().rstrip("\r\n")

    @staticmethod
    def csv_header() -> str:
        return ",".join(NOTIFICATION_CSV_COLUMNS)
