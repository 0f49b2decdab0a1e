"""Допоміжні функції для роботи з часом (UTC, ISO-8601, вирівнювання вікон)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def parse_ts(value: str | datetime) -> datetime:
    """Parse ISO-8601 (``Z`` or offset) into an aware UTC datetime.

    Naive values are taken to be UTC already.

    Raises:
        ValueError: empty or unparseable string.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("empty timestamp")
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_ts(dt: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SSZ`` (sub-second part kept if present)."""
    dt = parse_ts(dt)
    if dt.microsecond:
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def bucket_start(ts: datetime, size: timedelta) -> datetime:
    """Start of the clock-aligned window of length *size* containing *ts*.

    ``floor((ts - epoch) / size) * size`` in exact integer arithmetic, so an
    instant lying on a boundary maps to the window that starts there.
    """
    if size <= timedelta(0):
        raise ValueError("window size must be positive")
    n = (parse_ts(ts) - EPOCH) // size
    return EPOCH + n * size


def utcnow() -> datetime:
    return datetime.now(UTC)
