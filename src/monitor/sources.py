"""Access-log readers: batch (CSV / JSONL via pandas) and live JSONL tail.

Both produce plain dicts in the inbound shape ``{timestamp, path,
metadata}``; validation is left to the ingestor so that malformed rows are
counted as ingestion errors in one place.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import pandas as pd

log = logging.getLogger(__name__)

_CORE = ("timestamp", "path", "metadata")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # arrays / dicts
        return False


def _read_frame(path: Path) -> pd.DataFrame:
    if path.suffix in (".jsonl", ".ndjson"):
        return pd.read_json(path, lines=True, dtype=False, convert_dates=False)
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def _row_to_record(row: dict[str, Any], ts: pd.Timestamp) -> dict[str, Any]:
    meta = row.get("metadata")
    metadata: dict[str, Any] = dict(meta) if isinstance(meta, dict) else {}
    for k, v in row.items():
        if k in _CORE or _is_missing(v) or v == "":
            continue
        metadata.setdefault(k, v)
    path = row.get("path")
    return {
        "timestamp": "" if pd.isna(ts) else ts.to_pydatetime(),
        "path": None if _is_missing(path) else str(path),
        "metadata": metadata,
    }


def load_access_log(path: str | Path) -> list[dict[str, Any]]:
    """Load a whole access log and return records sorted by timestamp.

    Rows whose timestamp cannot be parsed are kept (with an empty
    timestamp) at the end so the ingestor rejects and counts them.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Access log not found: {p}")
    if p.stat().st_size == 0:
        log.warning("Access log %s is empty", p)
        return []

    df = _read_frame(p)
    if "timestamp" not in df.columns:
        log.warning("Access log %s has no 'timestamp' column — every row will be rejected", p)
        df["timestamp"] = ""
    ts = pd.to_datetime(df["timestamp"].astype(str), utc=True, errors="coerce", format="ISO8601")
    df = df.assign(_ts=ts).sort_values("_ts", kind="stable", na_position="last")

    records = [_row_to_record(row, row.pop("_ts")) for row in df.to_dict(orient="records")]
    bad = int(df["_ts"].isna().sum())
    log.info("Loaded %d access records from %s (%d with bad timestamps)", len(records), p, bad)
    return records


class JsonlTail:
    """Follows a growing JSONL file, returning only newly appended lines.

    A trailing line without ``\\n`` is left for the next poll, so a writer
    caught mid-line is never parsed half-way.
    """

    def __init__(self, path: str | Path, from_start: bool = False) -> None:
        self.path = Path(path)
        self.offset = 0
        self.bad_lines = 0
        if not from_start and self.path.is_file():
            self.offset = os.path.getsize(self.path)

    def poll(self) -> list[dict[str, Any]]:
        if not self.path.is_file():
            return []
        size = os.path.getsize(self.path)
        if size < self.offset:
            log.warning("%s shrank (%d < %d) — assuming rotation, reading from start",
                        self.path, size, self.offset)
            self.offset = 0
        if size == self.offset:
            return []

        with self.path.open("rb") as fh:
            fh.seek(self.offset)
            chunk = fh.read(size - self.offset)
        end = chunk.rfind(b"\n")
        if end < 0:
            return []
        self.offset += end + 1

        records: list[dict[str, Any]] = []
        for line_no, raw in enumerate(chunk[: end + 1].splitlines(), 1):
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as exc:
                self.bad_lines += 1
                log.warning("Skipping JSONL line %d of new chunk: %s", line_no, exc)
                continue
            if isinstance(obj, dict):
                records.append(obj)
            else:
                self.bad_lines += 1
                log.warning("Skipping non-object JSONL line %d", line_no)
        return records
