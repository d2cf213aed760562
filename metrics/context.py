"""
metrics/context.py -- Per-request inputs shared by every metric handler.

A handler receives one MetricContext and nothing else: the feed store, the
raw from/to/preset the request carried, and the clock. Handlers choose
their own default window by calling time_range() with it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from core.config import Settings, get_settings
from core.envelope import MetricEnvelopeBuilder
from core.models import MetricDefinition, TimeRange
from core.timerange import Clock, as_utc, resolve, utc_now
from feeds.store import FeedStore


@dataclass
class MetricContext:
    store: FeedStore
    explicit_from: Optional[datetime] = None
    explicit_to: Optional[datetime] = None
    preset: Optional[str] = None
    clock: Clock = utc_now
    settings: Settings = field(default_factory=get_settings)

    def now(self) -> datetime:
        return as_utc(self.clock())

    def time_range(self, default: Union[str, timedelta] = "month") -> TimeRange:
        """Resolve the request's bounds against this handler's default window."""
        return resolve(self.explicit_from, self.explicit_to, self.preset, default=default, clock=self.clock)

    def builder(self, definition: MetricDefinition) -> MetricEnvelopeBuilder:
        return MetricEnvelopeBuilder(definition, clock=self.clock)


def range_metadata(window: TimeRange) -> dict[str, Any]:
    return {"from": as_utc(window.start).isoformat(), "to": as_utc(window.end).isoformat()}


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value is not None else None
