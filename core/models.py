from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Payload kinds understood by the envelope builder and the widget renderers.
METRIC_KINDS = ("counter", "gauge", "distribution", "timeseries", "list")

# Upstream feeds a metric can be computed from.
METRIC_SOURCES = ("cisa_kev", "nvd_cve", "mitre_attack")

NO_DATA_LABEL = "No data available"


@dataclass(frozen=True)
class TimeRange:
    """Concrete [start, end] interval. Never persisted.

    Resolver-produced presets always satisfy start <= end. Explicit caller
    bounds are carried verbatim; a reversed range simply matches no rows.
    """

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class BucketPoint:
    timestamp: datetime
    count: int


@dataclass(frozen=True)
class BucketRung:
    """One step of a granularity ladder: a window ending at "now" and a bucket size."""

    window: timedelta
    interval: str  # "hour" | "day" | "week" | "month"
    window_label: str
    interval_label: str


@dataclass
class BucketResolution:
    window_label: str
    interval_label: str
    interval: Optional[str]  # None when no rung produced data
    points: list[BucketPoint] = field(default_factory=list)
    time_range: Optional[TimeRange] = None


@dataclass(frozen=True)
class MetricDefinition:
    """Static identity of a metric: what the widget shows in its header."""

    id: str
    title: str
    description: str
    source: str  # one of METRIC_SOURCES


@dataclass
class MetricValue:
    label: str
    value: float
    change: float = 0
    change_percent: float = 0
    previous: Optional[float] = None


@dataclass
class DistributionRow:
    label: str
    value: int
    percentage: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SeriesPoint:
    timestamp: datetime
    value: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ListItem:
    """A record summary shown as one row of a list widget."""

    title: str
    id: Optional[str] = None
    subtitle: Optional[str] = None
    value: Optional[Any] = None
    badge: Optional[dict[str, str]] = None  # {"text": ..., "variant": ...}
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class MetricPayload:
    """The uniform envelope returned for every metric, whatever its kind.

    Only the field matching `kind` is populated among distribution,
    timeseries, and items; the others stay empty.
    """

    kind: str  # one of METRIC_KINDS
    id: str
    title: str
    description: str
    source: str
    last_updated: datetime  # time of computation, not of the data
    value: MetricValue
    distribution: list[DistributionRow] = field(default_factory=list)
    timeseries: list[SeriesPoint] = field(default_factory=list)
    items: list[ListItem] = field(default_factory=list)
    interval: Optional[str] = None
    total: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)
