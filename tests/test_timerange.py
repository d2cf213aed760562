"""Unit tests for core/timerange.py -- request bounds -> concrete TimeRange.

Covers:
- Both explicit bounds are returned verbatim (including reversed ranges)
- Presets resolve against the injected clock
- Single bounds replace one side of the caller's default window
- Unknown presets and malformed dates raise ValidationError naming the field
- previous_period() is the equally long window ending where the current starts
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import FIXED_NOW, fixed_clock
from core.errors import ValidationError
from core.models import TimeRange
from core.timerange import as_utc, parse_preset, parse_timestamp, previous_period, resolve


class TestResolve:
    def test_explicit_bounds_returned_verbatim(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        end = datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert resolve(start, end, preset="7d", clock=fixed_clock) == TimeRange(start, end)

    def test_reversed_explicit_bounds_not_reordered(self):
        start = datetime(2024, 2, 1, tzinfo=timezone.utc)
        end = datetime(2024, 1, 1, tzinfo=timezone.utc)
        window = resolve(start, end, clock=fixed_clock)
        assert window.start == start
        assert window.end == end

    @pytest.mark.parametrize(
        "preset,delta",
        [("24h", timedelta(hours=24)), ("7d", timedelta(days=7)), ("30d", timedelta(days=30)), ("90d", timedelta(days=90))],
    )
    def test_presets(self, preset, delta):
        window = resolve(preset=preset, clock=fixed_clock)
        assert window.end == FIXED_NOW
        assert window.start == FIXED_NOW - delta

    def test_default_window_is_caller_choice(self):
        assert resolve(clock=fixed_clock).start == FIXED_NOW - timedelta(days=30)
        assert resolve(default="week", clock=fixed_clock).start == FIXED_NOW - timedelta(days=7)
        assert resolve(default=timedelta(hours=6), clock=fixed_clock).start == FIXED_NOW - timedelta(hours=6)

    def test_only_to_anchors_default_window(self):
        end = datetime(2024, 3, 31, tzinfo=timezone.utc)
        window = resolve(explicit_to=end, default="week", clock=fixed_clock)
        assert window == TimeRange(end - timedelta(days=7), end)

    def test_only_from_ends_now(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        window = resolve(explicit_from=start, clock=fixed_clock)
        assert window == TimeRange(start, FIXED_NOW)

    def test_unknown_preset_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve(preset="1y", clock=fixed_clock)
        assert exc_info.value.field == "preset"

    def test_unknown_default_is_programming_error(self):
        with pytest.raises(ValueError):
            resolve(default="fortnight", clock=fixed_clock)


def test_parse_preset():
    assert parse_preset(None) is None
    assert parse_preset("") is None
    assert parse_preset("90d") == "90d"
    with pytest.raises(ValidationError) as exc_info:
        parse_preset("1y")
    assert exc_info.value.field == "preset"


class TestParseTimestamp:
    def test_none_and_empty(self):
        assert parse_timestamp(None, "from") is None
        assert parse_timestamp("", "from") is None

    def test_zulu_suffix(self):
        assert parse_timestamp("2024-05-01T10:30:00Z", "from") == datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)

    def test_date_only_is_midnight_utc(self):
        assert parse_timestamp("2024-05-01", "to") == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = parse_timestamp("2024-05-01T12:00:00+02:00", "from")
        assert parsed == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_malformed_names_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_timestamp("last tuesday", "date_from")
        assert exc_info.value.field == "date_from"
        assert exc_info.value.status_code == 400

    def test_naive_datetime_tagged_utc(self):
        assert as_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc


def test_previous_period():
    current = TimeRange(datetime(2024, 1, 8, tzinfo=timezone.utc), datetime(2024, 1, 15, tzinfo=timezone.utc))
    prior = previous_period(current)
    assert prior.end == current.start
    assert prior.duration == current.duration
