"""Log Ingestor — accepts pushed access records and forwards them.

No filtering happens here: every well-formed event goes to the aggregator
in arrival order.  Malformed records are logged, counted and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from src.contracts.errors import IngestionError
from src.contracts.event import AccessEvent
from src.monitor.aggregator import WindowAggregator
from src.monitor.stats import MonitorStats
from src.shared.timeutil import format_ts, utcnow

log = logging.getLogger(__name__)

# producers with a slightly fast clock are tolerated up to this much
DEFAULT_MAX_FUTURE_SKEW = timedelta(minutes=5)


def to_event(record: AccessEvent | Mapping[str, Any]) -> AccessEvent:
    """Coerce an inbound record into an AccessEvent.

    Raises:
        IngestionError: missing/unparseable timestamp or missing path.
    """
    if isinstance(record, AccessEvent):
        return record
    if not isinstance(record, Mapping):
        raise IngestionError(f"unsupported record type {type(record).__name__}")
    try:
        return AccessEvent.from_dict(record)
    except KeyError as exc:
        raise IngestionError(f"missing field {exc.args[0]!s}") from exc
    except (TypeError, ValueError) as exc:
        raise IngestionError(f"bad timestamp {record.get('timestamp')!r}: {exc}") from exc


class LogIngestor:
    """Push interface in front of the aggregator.

    Events dated more than *max_future_skew* past *clock()* are rejected:
    they cannot be evaluated until the clock catches up.  ``None``
    disables the check (replay runs on a simulated clock).
    """

    def __init__(
        self,
        aggregator: WindowAggregator,
        stats: MonitorStats | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_future_skew: timedelta | None = DEFAULT_MAX_FUTURE_SKEW,
    ) -> None:
        self.aggregator = aggregator
        self.stats = stats or aggregator.stats
        self._clock = clock
        self.max_future_skew = max_future_skew

    def ingest(self, record: AccessEvent | Mapping[str, Any]) -> bool:
        """Accept one record.  Returns False when it was rejected."""
        try:
            event = to_event(record)
            self._check_not_future(event)
        except IngestionError as exc:
            self.stats.incr("events_rejected")
            self.stats.record_error("ingest", exc)
            log.warning("Ingestion error, event dropped: %s", exc)
            return False

        self.stats.incr("events_accepted")
        matched = self.aggregator.record(event)
        log.debug("Ingested %s %s (series matched: %d)", event.timestamp.isoformat(), event.path, matched)
        return True

    def ingest_many(self, records: Iterable[AccessEvent | Mapping[str, Any]]) -> int:
        """Ingest in order; returns the number of accepted records."""
        return sum(1 for r in records if self.ingest(r))

    def _check_not_future(self, event: AccessEvent) -> None:
        if self.max_future_skew is None:
            return
        limit = self._clock() + self.max_future_skew
        if event.timestamp > limit:
            raise IngestionError(
                f"timestamp {format_ts(event.timestamp)} is in the future "
                f"(accepting up to {format_ts(limit)})"
            )
