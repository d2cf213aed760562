"""
core/envelope.py -- Normalize aggregate results into one MetricPayload shape.

Handlers compute numbers; this module decides what those numbers mean in the
envelope. Keeping the change / percentage / ordering rules here means every
widget gets the same semantics regardless of which feed or query produced
the data:

  change         = current - previous            (0 when no previous value)
  change_percent = change / previous * 100, 2dp  (0 when previous == 0)
  distribution   = value desc, label asc; integer percentages of the total
  timeseries     = ascending by timestamp; headline is the latest bucket

Empty inputs always produce a valid, zeroed payload. A sparsely populated
feed is a normal operating condition, not an error.
"""

import math
from dataclasses import replace
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Optional

from core.bucketing import infer_interval
from core.models import (
    METRIC_KINDS,
    NO_DATA_LABEL,
    DistributionRow,
    ListItem,
    MetricDefinition,
    MetricPayload,
    MetricValue,
    SeriesPoint,
)
from core.timerange import Clock, utc_now


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def compute_change(current: float, previous: Optional[float]) -> tuple[float, float]:
    """Return (change, change_percent) for a current/previous pair.

    change_percent is 0 -- not None, not inf -- when previous is 0 or missing.
    """
    if previous is None:
        return 0, 0
    change = current - previous
    if previous == 0:
        return change, 0
    return change, round(change / previous * 100, 2)


def sort_distribution(rows: Iterable[DistributionRow]) -> list[DistributionRow]:
    return sorted(rows, key=lambda row: (-row.value, row.label))


def with_percentages(rows: Sequence[DistributionRow], total: Optional[int] = None) -> list[DistributionRow]:
    """Return copies of rows with integer percentages against `total` (defaults to the sum of the rows)."""
    denominator = total if total is not None else sum(row.value for row in rows)
    return [
        replace(row, percentage=round_half_up(row.value / denominator * 100) if denominator > 0 else 0)
        for row in rows
    ]


class MetricEnvelopeBuilder:
    """Build MetricPayload instances for one metric definition.

    Usage:
        builder = MetricEnvelopeBuilder(definition)
        payload = builder.counter(current=42, previous=40, label="Total Vulnerabilities")
        payload = builder.build("counter", current=42, previous=40)
    """

    def __init__(self, definition: MetricDefinition, clock: Clock = utc_now) -> None:
        self.definition = definition
        self._clock = clock

    def build(
        self,
        kind: str,
        current: Optional[float] = None,
        previous: Optional[float] = None,
        rows: Optional[Sequence[Any]] = None,
        **options: Any,
    ) -> MetricPayload:
        """Dispatch on kind. Raises ValueError for a kind outside METRIC_KINDS."""
        if kind not in METRIC_KINDS:
            raise ValueError(f"Unknown metric kind: {kind}")
        if kind in ("counter", "gauge"):
            return self._scalar(kind, current or 0, previous, **options)
        if kind == "distribution":
            return self.distribution(rows or [], **options)
        if kind == "timeseries":
            return self.timeseries(rows or [], **options)
        return self.list_items(rows or [], **options)

    # ------------------------------------------------------------------
    # Scalar kinds
    # ------------------------------------------------------------------

    def counter(self, current: float, previous: Optional[float] = None, **options: Any) -> MetricPayload:
        return self._scalar("counter", current, previous, **options)

    def gauge(self, current: float, previous: Optional[float] = None, **options: Any) -> MetricPayload:
        return self._scalar("gauge", current, previous, **options)

    def _scalar(
        self,
        kind: str,
        current: float,
        previous: Optional[float],
        label: str = "",
        breakdown: Optional[Sequence[DistributionRow]] = None,
        metadata: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> MetricPayload:
        change, change_percent = compute_change(current, previous)
        payload = self._payload(
            kind,
            MetricValue(
                label=label or self.definition.title,
                value=current,
                change=change,
                change_percent=change_percent,
                previous=previous,
            ),
            metadata,
            description,
        )
        # Gauges may carry a breakdown (e.g. compliant / approaching / overdue).
        if breakdown:
            payload.distribution = with_percentages(list(breakdown))
        return payload

    # ------------------------------------------------------------------
    # Distribution
    # ------------------------------------------------------------------

    def distribution(
        self,
        rows: Sequence[DistributionRow],
        total: Optional[int] = None,
        keep_order: bool = False,
        as_items: bool = False,
        metadata: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> MetricPayload:
        """Rank rows and compute percentages.

        total     -- denominator for percentages when rows are a top-N slice of
                     a larger population; defaults to the sum of the rows.
        keep_order -- keep the caller's ordering (e.g. severity CRITICAL..LOW)
                     instead of value-descending.
        as_items  -- also expose the rows as list items for list widgets.
        """
        ranked = list(rows) if keep_order else sort_distribution(rows)
        ranked = with_percentages(ranked, total)
        if ranked:
            top = ranked[0]
            value = MetricValue(label=top.label, value=top.value)
        else:
            value = MetricValue(label=NO_DATA_LABEL, value=0)
        payload = self._payload("distribution", value, metadata, description)
        payload.distribution = ranked
        payload.total = total if total is not None else sum(row.value for row in ranked)
        if as_items:
            payload.items = [
                ListItem(
                    id=f"{self.definition.id}-{rank}",
                    title=row.label,
                    subtitle=f"{row.value} vulnerabilities",
                    value=row.value,
                    metadata={"rank": rank, "percentage": row.percentage, **row.metadata},
                )
                for rank, row in enumerate(ranked, start=1)
            ]
        return payload

    # ------------------------------------------------------------------
    # Timeseries
    # ------------------------------------------------------------------

    def timeseries(
        self,
        rows: Sequence[SeriesPoint],
        interval: Optional[str] = None,
        label: str = "Latest",
        metadata: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> MetricPayload:
        """Order points by time; headline the latest bucket against the one before it."""
        ordered = sorted(rows, key=lambda point: point.timestamp)
        if ordered:
            current = ordered[-1].value
            previous = ordered[-2].value if len(ordered) > 1 else None
            change, change_percent = compute_change(current, previous)
            value = MetricValue(label=label, value=current, change=change, change_percent=change_percent, previous=previous)
        else:
            value = MetricValue(label=NO_DATA_LABEL, value=0)
        payload = self._payload("timeseries", value, metadata, description)
        payload.timeseries = ordered
        payload.interval = interval or infer_interval([point.timestamp for point in ordered])
        payload.total = sum(point.value for point in ordered)
        return payload

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    def list_items(
        self,
        rows: Sequence[ListItem],
        total: Optional[int] = None,
        label: str = "Items",
        metadata: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> MetricPayload:
        items = list(rows)
        count = total if total is not None else len(items)
        value = MetricValue(label=label if items else NO_DATA_LABEL, value=count)
        payload = self._payload("list", value, metadata, description)
        payload.items = items
        payload.total = count
        return payload

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    def _payload(
        self,
        kind: str,
        value: MetricValue,
        metadata: Optional[dict],
        description: Optional[str],
    ) -> MetricPayload:
        return MetricPayload(
            kind=kind,
            id=self.definition.id,
            title=self.definition.title,
            description=description or self.definition.description,
            source=self.definition.source,
            last_updated=self._now(),
            value=value,
            metadata=dict(metadata or {}),
        )

    def _now(self) -> datetime:
        return self._clock()
