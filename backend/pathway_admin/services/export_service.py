"""
CSV Export

Header plus rows joined by newlines. Columns listed in `quoted` are always
wrapped in double quotes; any other field is quoted only when it contains a
comma, quote or newline. Inner quotes are doubled, so a standard CSV reader
returns the original values.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence, Set


def quote_field(value: Any) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def format_field(value: Any, always_quote: bool = False) -> str:
    text = "" if value is None else str(value)
    if always_quote or any(ch in text for ch in (",", '"', "\n", "\r")):
        return quote_field(text)
    return text


def to_csv(header: Sequence[str], rows: Iterable[Sequence[Any]], quoted: Optional[Set[int]] = None) -> str:
    """Serialize rows; `quoted` holds the indexes of always-quoted columns."""
    quoted = quoted or set()
    lines = [",".join(header)]
    for row in rows:
        lines.append(",".join(format_field(value, i in quoted) for i, value in enumerate(row)))
    return "\n".join(lines)


def export_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and ':' / '.' replaced by '-'."""
    return iso_utc(now).replace(":", "-").replace(".", "-")


def iso_utc(now: Optional[datetime] = None) -> str:
    """'2026-03-01T12:00:00.000Z'"""
    if now is None:
        now = datetime.now(timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def export_filename(metric: str, date_range: str, now: Optional[datetime] = None) -> str:
    """'<metric>-<range>-<timestamp>.csv'"""
    return f"{metric}-{date_range}-{export_timestamp(now)}.csv"
