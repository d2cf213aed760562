"""
core/bucketing.py -- Adaptive time-bucket selection for time-series widgets.

A "new vulnerabilities" chart asks for the last 24 hours at hourly
resolution. A sparsely populated feed often has nothing in that window, and
an empty chart tells the analyst nothing. The AdaptiveBucketer walks a
granularity ladder -- (24h, hour) -> (7d, day) -> (30d, day) by default --
and stops at the first rung that yields at least one point.

The fallback silently changes what "last 24 hours" means when data is
sparse. The rung actually used is reported through window_label and
interval_label so the widget can say so; nothing else flags the divergence.

Bucket truncation happens in Python, not with DATE_TRUNC / strftime, so the
same code runs on SQLite and PostgreSQL. The count query is injected: the
bucketer knows nothing about tables.
"""

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Optional

from core.models import NO_DATA_LABEL, BucketPoint, BucketResolution, BucketRung, TimeRange
from core.timerange import Clock, as_utc, utc_now

logger = logging.getLogger("cyberdash.bucketing")

# count_query(time_range, interval) -> per-bucket points, ascending by timestamp
CountQuery = Callable[[TimeRange, str], list[BucketPoint]]

DEFAULT_LADDER: tuple[BucketRung, ...] = (
    BucketRung(timedelta(hours=24), "hour", "24 hours", "1 hour"),
    BucketRung(timedelta(days=7), "day", "7 days", "1 day"),
    BucketRung(timedelta(days=30), "day", "30 days", "1 day"),
)

# Smallest gap -> bucket width, checked from widest to narrowest.
_INTERVAL_WIDTHS: tuple[tuple[str, timedelta], ...] = (
    ("month", timedelta(days=28)),
    ("week", timedelta(days=7)),
    ("day", timedelta(days=1)),
    ("hour", timedelta(hours=1)),
)


def truncate(value: datetime, interval: str) -> datetime:
    """Floor a timestamp to the start of its bucket (UTC)."""
    value = as_utc(value)
    if interval == "hour":
        return value.replace(minute=0, second=0, microsecond=0)
    if interval == "day":
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    if interval == "week":
        day = value.replace(hour=0, minute=0, second=0, microsecond=0)
        return day - timedelta(days=day.weekday())  # ISO weeks start Monday
    if interval == "month":
        return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    raise ValueError(f"Unsupported bucket interval: {interval}")


def bucket_timestamps(timestamps: Iterable[datetime], interval: str) -> list[BucketPoint]:
    """Group raw event timestamps into ascending (bucket start, count) points."""
    counts = Counter(truncate(ts, interval) for ts in timestamps)
    return [BucketPoint(timestamp=ts, count=counts[ts]) for ts in sorted(counts)]


def infer_interval(timestamps: Sequence[datetime]) -> Optional[str]:
    """Derive bucket width from already-fetched points without re-querying.

    Uses the smallest gap between consecutive distinct timestamps. Returns
    None when fewer than two distinct timestamps exist (width is unknowable).
    """
    distinct = sorted({as_utc(ts) for ts in timestamps})
    if len(distinct) < 2:
        return None
    smallest = min(later - earlier for earlier, later in zip(distinct, distinct[1:]))
    for name, width in _INTERVAL_WIDTHS:
        if smallest >= width:
            return name
    return "hour"


class AdaptiveBucketer:
    """Cascade through a granularity ladder until a rung yields data.

    Usage:
        bucketer = AdaptiveBucketer(store.kev_bucket_counts)
        resolution = bucketer.bucket(DEFAULT_LADDER)
    """

    def __init__(self, count_query: CountQuery, clock: Clock = utc_now) -> None:
        self._count_query = count_query
        self._clock = clock

    def bucket(self, ladder: Sequence[BucketRung] = DEFAULT_LADDER, end: Optional[datetime] = None) -> BucketResolution:
        """Return the finest resolution on the ladder that has at least one point.

        Every rung ends at `end` (default: now). When the ladder is exhausted
        the result is an explicit "no data" resolution with empty points.
        """
        anchor = end if end is not None else self._clock()
        for position, rung in enumerate(ladder):
            window = TimeRange(start=anchor - rung.window, end=anchor)
            points = sorted(self._count_query(window, rung.interval), key=lambda p: p.timestamp)
            if points:
                if position > 0:
                    logger.info(
                        "No data at %s/%s; widened to %s/%s (%d points)",
                        ladder[0].window_label,
                        ladder[0].interval_label,
                        rung.window_label,
                        rung.interval_label,
                        len(points),
                    )
                return BucketResolution(
                    window_label=rung.window_label,
                    interval_label=rung.interval_label,
                    interval=rung.interval,
                    points=points,
                    time_range=window,
                )
        return BucketResolution(window_label=NO_DATA_LABEL, interval_label="N/A", interval=None, points=[])
