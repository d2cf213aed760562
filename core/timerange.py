"""
core/timerange.py -- Resolve optional from/to inputs into a concrete TimeRange.

Callers (metric handlers, the list route) hand over whatever the request
carried: two explicit bounds, one bound, a named preset, or nothing. The
resolver turns that into a TimeRange without touching the network or the
store. "Now" comes from an injected clock so tests can pin it.

Different call sites fall back to different default windows ("last 30 days"
for severity distribution vs "last month" for counters). The default is a
parameter, never a module constant read inside resolve().
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from core.errors import ValidationError
from core.models import TimeRange

Clock = Callable[[], datetime]

# Named presets offered by the date-range picker. Each is a fixed duration
# subtracted from the current instant.
PRESETS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}

DEFAULT_PRESET = "30d"

# Fallback windows used by handlers when the request carries no bounds.
DEFAULT_RANGES: dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "quarter": timedelta(days=90),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(raw: Union[str, datetime, None], field: str) -> Optional[datetime]:
    """Parse an ISO 8601 string (or pass through a datetime) as a UTC instant.

    Raises ValidationError naming the field when the string is not ISO 8601.
    Date-only strings resolve to midnight UTC.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return as_utc(raw)
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            "Invalid date.",
            field=field,
            detail=f"{raw[:40]!r} is not an ISO 8601 date or timestamp.",
        ) from None
    return as_utc(parsed)


def _default_duration(default: Union[str, timedelta]) -> timedelta:
    if isinstance(default, timedelta):
        return default
    try:
        return DEFAULT_RANGES[default]
    except KeyError:
        raise ValueError(f"Unknown default range: {default}") from None


def parse_preset(raw: Optional[str]) -> Optional[str]:
    """Return the preset name, or None when absent. Raises ValidationError for unknown names."""
    if not raw:
        return None
    if raw not in PRESETS:
        raise ValidationError(
            "Unknown date range preset.",
            field="preset",
            detail=f"Expected one of: {', '.join(PRESETS)}.",
        )
    return raw


def resolve(
    explicit_from: Optional[datetime] = None,
    explicit_to: Optional[datetime] = None,
    preset: Optional[str] = None,
    default: Union[str, timedelta] = "month",
    clock: Clock = utc_now,
) -> TimeRange:
    """Return the concrete TimeRange for a request.

    Precedence:
      1. Both explicit bounds -> returned verbatim (no clamping, no reordering).
      2. A preset name        -> [now - preset, now].
      3. Otherwise            -> the caller's default window, with any single
                                 explicit bound replacing its side.

    Raises ValidationError for an unknown preset name.
    """
    if explicit_from is not None and explicit_to is not None:
        return TimeRange(start=explicit_from, end=explicit_to)

    if parse_preset(preset):
        now = clock()
        return TimeRange(start=now - PRESETS[preset], end=now)

    duration = _default_duration(default)
    end = explicit_to if explicit_to is not None else clock()
    start = explicit_from if explicit_from is not None else end - duration
    return TimeRange(start=start, end=end)


def previous_period(current: TimeRange) -> TimeRange:
    """Return the equally long window that ends where `current` starts."""
    return TimeRange(start=current.start - current.duration, end=current.start)
