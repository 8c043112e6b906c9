"""
Test Suite: Date Range Resolver

1. Named ranges clamp start to midnight and end to 23:59:59.999999 of today
2. custom needs both bounds, else behaves as last_7_days
3. all_time is None or a 2000-01-01 floor depending on the call site
4. Previous period has the same length and ends just before the window
5. Everything is computed in DASHBOARD_TIMEZONE
6. Free-form dispute date parsing
"""
from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import NOW

from pathway_admin.services import date_ranges
from pathway_admin.services.date_ranges import (
    AllTimePolicy,
    DateRange,
    coerce_range,
    format_month_day,
    format_time_ago,
    parse_date_string,
    parse_iso_datetime,
    previous_period,
    resolve_range,
)


class TestNamedRanges:
    """Start/end clamping for every named range."""

    @pytest.mark.parametrize("rng,expected_start", [
        (DateRange.LAST_7_DAYS, date(2026, 3, 11)),
        (DateRange.LAST_30_DAYS, date(2026, 2, 16)),
        (DateRange.THIS_MONTH, date(2026, 3, 1)),
        (DateRange.THIS_QUARTER, date(2026, 1, 1)),
    ])
    def test_start_is_midnight_of_computed_day(self, rng, expected_start):
        window = resolve_range(rng, now=NOW)
        assert window.start.date() == expected_start
        assert window.start.time() == time.min

    @pytest.mark.parametrize("rng", [
        DateRange.LAST_7_DAYS, DateRange.LAST_30_DAYS, DateRange.THIS_MONTH, DateRange.THIS_QUARTER,
    ])
    def test_end_is_end_of_today(self, rng):
        window = resolve_range(rng, now=NOW)
        assert window.end.date() == date(2026, 3, 18)
        assert window.end.time() == time.max

    def test_quarter_start_for_november(self):
        window = resolve_range(DateRange.THIS_QUARTER, now=datetime(2026, 11, 20, tzinfo=timezone.utc))
        assert window.start.date() == date(2026, 10, 1)

    def test_string_range_accepted(self):
        window = resolve_range("last_30_days", now=NOW)
        assert window.range == DateRange.LAST_30_DAYS

    def test_unknown_range_falls_back_to_last_7_days(self):
        assert coerce_range("fortnight") == DateRange.LAST_7_DAYS


class TestCustomRange:
    """custom requires both bounds."""

    def test_both_bounds_used(self):
        window = resolve_range(DateRange.CUSTOM, "2026-01-05", "2026-01-20", now=NOW)
        assert window.start.date() == date(2026, 1, 5)
        assert window.start.time() == time.min
        assert window.end.date() == date(2026, 1, 20)
        assert window.end.time() == time.max

    def test_date_objects_accepted(self):
        window = resolve_range(DateRange.CUSTOM, date(2026, 2, 1), date(2026, 2, 2), now=NOW)
        assert window.start.date() == date(2026, 2, 1)

    @pytest.mark.parametrize("start,end", [
        ("2026-01-05", None),
        (None, "2026-01-20"),
        (None, None),
        ("not-a-date", "2026-01-20"),
    ])
    def test_missing_bound_behaves_as_last_7_days(self, start, end):
        window = resolve_range(DateRange.CUSTOM, start, end, now=NOW)
        assert window.start.date() == date(2026, 3, 11)
        assert window.end.date() == date(2026, 3, 18)


class TestAllTime:
    """The two all_time conventions."""

    def test_unbounded_is_none(self):
        assert resolve_range(DateRange.ALL_TIME, all_time=AllTimePolicy.UNBOUNDED, now=NOW) is None

    def test_epoch_floor_starts_in_2000(self):
        window = resolve_range(DateRange.ALL_TIME, all_time=AllTimePolicy.EPOCH_2000, now=NOW)
        assert window.start.date() == date(2000, 1, 1)
        assert window.end.date() == date(2026, 3, 18)

    def test_previous_period_of_all_time_is_itself(self):
        window = resolve_range(DateRange.ALL_TIME, all_time=AllTimePolicy.EPOCH_2000, now=NOW)
        assert previous_period(window) == window


class TestPreviousPeriod:
    """Same duration, ending right before the window."""

    def test_last_7_days(self):
        window = resolve_range(DateRange.LAST_7_DAYS, now=NOW)
        prev = previous_period(window)
        assert prev.end.date() == date(2026, 3, 10)
        assert prev.end.time() == time.max
        assert prev.start.date() == date(2026, 3, 3)
        assert prev.end < window.start

    def test_window_contains_is_inclusive(self):
        window = resolve_range(DateRange.LAST_7_DAYS, now=NOW)
        assert window.contains(window.start)
        assert window.contains(window.end)
        assert not window.contains(window.start - timedelta(microseconds=1))
        assert not window.contains(None)


class TestTimezonePinning:
    """Day boundaries follow DASHBOARD_TIMEZONE, not UTC or the host zone."""

    def test_day_boundaries_in_configured_zone(self):
        # 02:00 UTC on the 18th is still the 17th in New York
        instant = datetime(2026, 3, 18, 2, 0, tzinfo=timezone.utc)
        with patch.object(date_ranges, "DASHBOARD_TIMEZONE", "America/New_York"):
            window = resolve_range(DateRange.LAST_7_DAYS, now=instant)
        assert window.end.date() == date(2026, 3, 17)
        assert str(window.end.tzinfo) == "America/New_York"

    def test_naive_values_taken_as_utc(self):
        window = resolve_range(DateRange.LAST_7_DAYS, now=NOW)
        assert window.contains(datetime(2026, 3, 15, 12, 0))


class TestParsing:
    """Free-form date strings from dispute candidates."""

    def test_mm_dd_yyyy(self):
        parsed = parse_date_string("03/05/2026", NOW)
        assert (parsed.year, parsed.month, parsed.day) == (2026, 3, 5)

    def test_general_format_falls_back_to_parser(self):
        parsed = parse_date_string("2025-12-01", NOW)
        assert (parsed.year, parsed.month, parsed.day) == (2025, 12, 1)

    @pytest.mark.parametrize("value", [None, "", "null", "undefined", "garbage", "01/01/1960", "01/01/2031"])
    def test_unusable_values_are_none(self, value):
        assert parse_date_string(value, NOW) is None

    def test_iso_with_z_suffix(self):
        parsed = parse_iso_datetime("2026-03-01T10:00:00Z")
        assert parsed == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_iso_rejects_non_strings(self):
        assert parse_iso_datetime(12345) is None


class TestFormatting:
    """Relative labels."""

    @pytest.mark.parametrize("delta,expected", [
        (timedelta(seconds=30), "Just now"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=3), "3h ago"),
        (timedelta(days=3), "3d ago"),
        (timedelta(days=10), "Mar 8"),
    ])
    def test_time_ago(self, delta, expected):
        assert format_time_ago(NOW - delta, NOW) == expected

    def test_yesterday_label_only_when_asked(self):
        value = NOW - timedelta(days=1, hours=2)
        assert format_time_ago(value, NOW) == "1d ago"
        assert format_time_ago(value, NOW, yesterday=True) == "Yesterday"

    def test_month_day(self):
        assert format_month_day(datetime(2026, 1, 5, tzinfo=timezone.utc)) == "Jan 5"
