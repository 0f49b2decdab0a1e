"""Звітування: CSV сповіщень та текстовий звіт по стадіях."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from src.contracts.notification import NOTIFICATION_CSV_COLUMNS
from src.monitor.dispatcher import Delivery

log = logging.getLogger(__name__)


def _atomic_write(path: str, content: str) -> None:
    """Атомарно записує content у файл path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def write_notifications_csv(deliveries: list[Delivery], path: str) -> None:
    """Один рядок на сповіщення; останній стовпець каже, чи sink його прийняв."""
    lines = [",".join([*NOTIFICATION_CSV_COLUMNS, "delivered"])]
    lines.extend(
        f"{d.notification.to_csv_row()},{str(d.delivered).lower()}" for d in deliveries
    )
    _atomic_write(path, "\n".join(lines) + "\n")
    failed = sum(1 for d in deliveries if not d.delivered)
    log.info("Wrote notifications → %s (%d rows, %d undelivered)", path, len(deliveries), failed)


def render_status(status: dict[str, Any]) -> str:
    """Текстовий звіт: стан кожного правила та лічильники стадій."""
    stats = status.get("stats", {})
    lines: list[str] = []
    lines.append("=" * 60)
    lines.append("  Access Monitor Report")
    lines.append("=" * 60)
    lines.append("")

    lines.append("--- Rules ---")
    for name, st in sorted(status.get("rules", {}).items()):
        lines.append(f"  {name}")
        lines.append(f"    status:        {st['status']}")
        lines.append(f"    last count:    {st['last_count'] if st['last_count'] is not None else '-'}")
        lines.append(f"    last fired:    {st['last_fired'] or '-'}")
        lines.append(f"    transitions:   {st['transitions']}")
    lines.append("")

    lines.append("--- Ingest ---")
    lines.append(f"  accepted:        {stats.get('events_accepted', 0)}")
    lines.append(f"  rejected:        {stats.get('events_rejected', 0)}")
    lines.append(f"  matched:         {stats.get('events_matched', 0)}")
    lines.append(f"  late (dropped):  {stats.get('events_late', 0)}")
    lines.append(f"  windows opened:  {stats.get('windows_opened', 0)}")
    lines.append("")
    lines.append("--- Evaluation ---")
    lines.append(f"  ticks:           {stats.get('ticks', 0)}")
    lines.append(f"  evaluations:     {stats.get('evaluations', 0)}")
    lines.append(f"  predicate hits:  {stats.get('predicate_hits', 0)}")
    lines.append(f"  errors:          {stats.get('evaluation_errors', 0)}")
    lines.append(f"  fired:           {stats.get('fired', 0)}")
    lines.append(f"  mitigated:       {stats.get('mitigated', 0)}")
    lines.append("")
    lines.append("--- Dispatch ---")
    lines.append(f"  sent:            {stats.get('dispatch_sent', 0)}")
    lines.append(f"  failed:          {stats.get('dispatch_failed', 0)}")
    lines.append(f"  suppressed:      {stats.get('dispatch_suppressed', 0)}")

    errors = stats.get("recent_errors", [])
    if errors:
        lines.append("")
        lines.append("--- Recent errors ---")
        for e in errors:
            rule = f" [{e['rule']}]" if e.get("rule") else ""
            lines.append(f"  {e['at']} {e['stage']}/{e['kind']}{rule}: {e['message']}")

    return "\n".join(lines) + "\n"


def write_report_txt(status: dict[str, Any], path: str) -> None:
    _atomic_write(path, render_status(status))
    log.info("Wrote report → %s", path)
