"""
Pathway Admin - Date Range Resolver

Turns a named range into a [start, end] window. Every computation is pinned to
DASHBOARD_TIMEZONE, never the machine's local zone.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

from ..config import DASHBOARD_TIMEZONE

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class DateRange(str, Enum):
    """Named ranges offered by the dashboard, reports and analytics screens."""
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    THIS_MONTH = "this_month"
    THIS_QUARTER = "this_quarter"
    ALL_TIME = "all_time"
    CUSTOM = "custom"


class AllTimePolicy(str, Enum):
    """
    What `all_time` means at a given call site.

    UNBOUNDED: no window at all (reports, tickets, journeys, disputes, mailing).
    EPOCH_2000: a window starting 2000-01-01 (dashboard stats).
    """
    UNBOUNDED = "unbounded"
    EPOCH_2000 = "epoch_2000"


MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class DateWindow:
    """Inclusive [start, end] window, both aware datetimes."""
    start: datetime
    end: datetime
    range: DateRange = DateRange.LAST_7_DAYS

    def contains(self, value: Optional[datetime]) -> bool:
        if value is None:
            return False
        value = to_local(value)
        return self.start <= value <= self.end


# =============================================================================
# TIMEZONE HELPERS
# =============================================================================

def dashboard_tz() -> ZoneInfo:
    return ZoneInfo(DASHBOARD_TIMEZONE)


def now_local(now: Optional[datetime] = None) -> datetime:
    """Current instant in the dashboard zone (or `now` converted to it)."""
    if now is None:
        now = datetime.now(timezone.utc)
    return to_local(now)


def to_local(value: datetime) -> datetime:
    """Convert to the dashboard zone; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(dashboard_tz())


def start_of_day(value: Union[datetime, date]) -> datetime:
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.min, tzinfo=dashboard_tz())


def end_of_day(value: Union[datetime, date]) -> datetime:
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.max, tzinfo=dashboard_tz())


def coerce_range(value: Union[str, DateRange]) -> DateRange:
    """Accept a raw string from a request; unknown values become last_7_days."""
    if isinstance(value, DateRange):
        return value
    try:
        return DateRange(value)
    except ValueError:
        logger.warning(f"Unknown date range '{value}', using last_7_days")
        return DateRange.LAST_7_DAYS


# =============================================================================
# RANGE RESOLUTION
# =============================================================================

def resolve_range(
    range: Union[str, DateRange],
    start: Optional[Union[str, date, datetime]] = None,
    end: Optional[Union[str, date, datetime]] = None,
    *,
    all_time: AllTimePolicy = AllTimePolicy.UNBOUNDED,
    now: Optional[datetime] = None,
) -> Optional[DateWindow]:
    """
    Resolve a named range to a window.

    Returns None only for `all_time` under the UNBOUNDED policy. A `custom`
    range without both bounds falls back to last_7_days.
    """
    rng = coerce_range(range)
    today = now_local(now)

    if rng == DateRange.CUSTOM:
        custom_start = _as_date(start)
        custom_end = _as_date(end)
        if custom_start and custom_end:
            return DateWindow(start_of_day(custom_start), end_of_day(custom_end), rng)
        rng_start = today - timedelta(days=7)
        return DateWindow(start_of_day(rng_start), end_of_day(today), rng)

    if rng == DateRange.ALL_TIME:
        if all_time == AllTimePolicy.UNBOUNDED:
            return None
        return DateWindow(start_of_day(date(2000, 1, 1)), end_of_day(today), rng)

    if rng == DateRange.LAST_7_DAYS:
        rng_start = today - timedelta(days=7)
    elif rng == DateRange.LAST_30_DAYS:
        rng_start = today - timedelta(days=30)
    elif rng == DateRange.THIS_MONTH:
        rng_start = today.replace(day=1)
    else:
        quarter_month = ((today.month - 1) // 3) * 3 + 1
        rng_start = today.replace(month=quarter_month, day=1)

    return DateWindow(start_of_day(rng_start), end_of_day(today), rng)


def previous_period(window: DateWindow) -> DateWindow:
    """
    Window of equal length ending just before `window` starts.

    For all_time there is no meaningful previous period; the window itself is
    returned.
    """
    if window.range == DateRange.ALL_TIME:
        return window
    duration = window.end - window.start
    prev_end = end_of_day(window.start - timedelta(microseconds=1))
    prev_start = start_of_day(prev_end - duration)
    return DateWindow(prev_start, prev_end, window.range)


def _as_date(value: Optional[Union[str, date, datetime]]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_local(value).date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable custom date '{value}'")
        return None


# =============================================================================
# PARSING
# =============================================================================

def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """Datetime passthrough or ISO-8601 string parse; anything else is None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def parse_date_string(value: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse the free-form date strings stored on dispute candidates.

    Tries strict MM/DD/YYYY first, then a general parse. Years must lie in
    (1970, current year + 1].
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text or text in ("null", "undefined"):
        return None

    max_year = now_local(now).year + 1

    parts = text.split("/")
    if len(parts) == 3:
        try:
            month, day, year = int(parts[0]), int(parts[1]), int(parts[2])
        except ValueError:
            month = day = year = 0
        if 1 <= month <= 12 and 1 <= day <= 31 and 1970 < year <= max_year:
            try:
                return datetime(year, month, day, tzinfo=dashboard_tz())
            except ValueError:
                # e.g. 02/30 - fall through to the general parse
                pass

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if not 1970 < parsed.year <= max_year:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dashboard_tz())
    return parsed


# =============================================================================
# FORMATTING
# =============================================================================

def format_month_day(value: datetime) -> str:
    """'Jan 5'"""
    value = to_local(value)
    return f"{MONTH_ABBR[value.month - 1]} {value.day}"


def format_time_ago(value: Optional[datetime], now: Optional[datetime] = None, yesterday: bool = False) -> str:
    """
    Relative label for feeds and tables.

    Just now / Nm ago / Nh ago / (Yesterday) / Nd ago / Mon D
    """
    if value is None:
        return ""
    current = now_local(now)
    value = to_local(value)
    diff = current - value
    minutes = int(diff.total_seconds() // 60)
    hours = int(diff.total_seconds() // 3600)
    days = diff.days

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if yesterday and days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days}d ago"
    return format_month_day(value)
