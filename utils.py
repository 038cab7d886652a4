from datetime import datetime, time, timedelta, timezone

from dateutil import parser as dtparser
from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Naive UTC 'now'; every timestamp column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_aware_utc(dt: datetime) -> datetime:
    """Return a UTC-aware datetime (treat naive as UTC)."""
    if dt is None:
        return None
    # tz-naive or tzinfo with no offset => treat as UTC
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    if dt is None:
        return None
    return ensure_aware_utc(dt).replace(tzinfo=None)


def parse_datetime(val):
    """Parse a date/datetime string to naive UTC. Returns None if empty/invalid."""
    if not val:
        return None
    try:
        return to_naive_utc(dtparser.parse(val))
    except (ValueError, OverflowError):
        return None


def utc_day_range(start: datetime, end: datetime):
    """Widen [start, end] to whole UTC days: 00:00:00 of start to 23:59:59.999999 of end."""
    return (
        datetime.combine(start.date(), time.min),
        datetime.combine(end.date(), time.max),
    )


def months_ago(now: datetime, months: int) -> datetime:
    """Midnight of the same day-of-month `months` calendar months before `now`.

    Short months clamp to their last day (31 Jul - 5 months -> 28/29 Feb).
    """
    return datetime.combine((now - relativedelta(months=months)).date(), time.min)


def one_second_window(instant: datetime):
    return instant, instant + timedelta(seconds=1)
