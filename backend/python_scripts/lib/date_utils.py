"""
Date utilities — timestamp parsing and calendar-aligned period buckets.

All bucketing happens in local time for the configured timezone
(``DEFAULT_CONFIG['timezone']``). Unparsable timestamps never raise:
``parse_timestamp`` returns None and every predicate built on it returns
False, so malformed rows drop out of temporal aggregation.

Usage:
    from lib.date_utils import period_start, in_period, week_bucket_key

    start = period_start('weekly', datetime(2026, 2, 4, 15, 0))
    # Monday 2026-02-02 00:00 America/New_York
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

import pytz

from config.scoring_config import DEFAULT_CONFIG

PERIODS = ('daily', 'weekly', 'monthly', 'quarterly', 'yearly')

# Week key for timestamps that could not be parsed; never charted
UNKNOWN_BUCKET = 'Unknown'

TimestampLike = Union[datetime, date, str, int, float, None]

# Postgres trims trailing zeros from fractions and may print "+00" offsets
_FRACTION_RE = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")
_SHORT_OFFSET_RE = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?[+-]\d{2})$")


def _tz(tz=None):
    if tz is None:
        tz = DEFAULT_CONFIG['timezone']
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def _normalise_iso(text: str) -> str:
    """Pad fractions to 6 digits and offsets to HH:MM for ``fromisoformat``."""
    text = _FRACTION_RE.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text, count=1)
    return _SHORT_OFFSET_RE.sub(r"\1:00", text)


def parse_timestamp(value: TimestampLike) -> Optional[datetime]:
    """Parse a timestamp from a datetime, date, unix seconds or ISO string.

    Returns None when the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            return datetime.fromisoformat(_normalise_iso(text))
        except ValueError:
            return None
    return None


def to_local(dt: datetime, tz=None) -> datetime:
    """Express a datetime in local time. Naive values are taken as local."""
    zone = _tz(tz)
    if dt.tzinfo is None:
        return zone.localize(dt)
    return dt.astimezone(zone)


def _local_midnight(day: date, tz=None) -> datetime:
    return _tz(tz).localize(datetime.combine(day, time.min))


def period_start(period: str, reference_time: TimestampLike = None, tz=None) -> datetime:
    """Start of the calendar window of ``period`` containing ``reference_time``.

    Args:
        period: one of daily, weekly, monthly, quarterly, yearly
        reference_time: anchor timestamp (defaults to now)
        tz: timezone name or tzinfo (defaults to the configured timezone)

    Returns:
        Timezone-aware local midnight opening the window.
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period!r} (expected one of {PERIODS})")

    ref = parse_timestamp(reference_time) if reference_time is not None else None
    if ref is None:
        ref = datetime.now(timezone.utc)
    day = to_local(ref, tz).date()

    if period == 'weekly':
        # weekday(): Monday=0 ... Sunday=6, so Sunday goes 6 days back
        day = day - timedelta(days=day.weekday())
    elif period == 'monthly':
        day = day.replace(day=1)
    elif period == 'quarterly':
        day = day.replace(month=(day.month - 1) // 3 * 3 + 1, day=1)
    elif period == 'yearly':
        day = day.replace(month=1, day=1)

    return _local_midnight(day, tz)


def period_end(period: str, reference_time: TimestampLike = None, tz=None) -> datetime:
    """Exclusive end of the window: the start of the following period."""
    start = period_start(period, reference_time, tz)
    day = start.date()

    if period == 'daily':
        day = day + timedelta(days=1)
    elif period == 'weekly':
        day = day + timedelta(days=7)
    elif period == 'monthly':
        day = date(day.year + (day.month == 12), day.month % 12 + 1, 1)
    elif period == 'quarterly':
        month = day.month + 3
        day = date(day.year + (month > 12), (month - 1) % 12 + 1, 1)
    else:
        day = date(day.year + 1, 1, 1)

    return _local_midnight(day, tz)


def in_period(event_time: TimestampLike, period: str,
              reference_time: TimestampLike = None, tz=None) -> bool:
    """True when ``event_time`` falls in [start, end) of the period window.

    Unparsable timestamps are excluded rather than raising.
    """
    parsed = parse_timestamp(event_time)
    if parsed is None:
        return False
    local = to_local(parsed, tz)
    return period_start(period, reference_time, tz) <= local < period_end(period, reference_time, tz)


def in_date_range(event_time: TimestampLike,
                  start_date: Optional[TimestampLike] = None,
                  end_date: Optional[TimestampLike] = None,
                  tz=None) -> bool:
    """Inclusive calendar-day range check; a missing bound is unbounded."""
    parsed = parse_timestamp(event_time)
    if parsed is None:
        return False
    local = to_local(parsed, tz)

    if start_date is not None:
        start = parse_timestamp(start_date)
        if start is not None and local < _local_midnight(to_local(start, tz).date(), tz):
            return False
    if end_date is not None:
        end = parse_timestamp(end_date)
        if end is not None:
            next_day = to_local(end, tz).date() + timedelta(days=1)
            if local >= _local_midnight(next_day, tz):
                return False
    return True


def week_bucket_key(timestamp: TimestampLike, tz=None) -> str:
    """Monday-aligned ``YYYY-MM-DD`` key, or ``UNKNOWN_BUCKET``."""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return UNKNOWN_BUCKET
    day = to_local(parsed, tz).date()
    return (day - timedelta(days=day.weekday())).isoformat()


def days_between(start: TimestampLike, end: TimestampLike) -> int:
    """Whole days from ``start`` to ``end``; 0 if unparsable or reversed."""
    a = parse_timestamp(start)
    b = parse_timestamp(end)
    if a is None or b is None:
        return 0
    a = to_local(a)
    b = to_local(b)
    if b < a:
        return 0
    return int((b - a).total_seconds() // 86400)


def hours_between(start: TimestampLike, end: TimestampLike) -> Optional[float]:
    """Signed hours from ``start`` to ``end``, or None if unparsable."""
    a = parse_timestamp(start)
    b = parse_timestamp(end)
    if a is None or b is None:
        return None
    return (to_local(b) - to_local(a)).total_seconds() / 3600


def local_date_string(timestamp: TimestampLike, tz=None) -> Optional[str]:
    """Local calendar date as ``YYYY-MM-DD`` (None if unparsable)."""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return None
    return to_local(parsed, tz).date().isoformat()
