from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from dateutil import tz
from dateutil.relativedelta import relativedelta

DEFAULT_TIMEZONE = "America/New_York"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_valid_timezone(name: Optional[str]) -> bool:
    return bool(name) and tz.gettz(name) is not None


def local_now(timezone_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """
    Current wall-clock time in the given IANA timezone.

    Unknown or empty names fall back to DEFAULT_TIMEZONE.
    """
    zone = tz.gettz(timezone_name) if timezone_name else None
    if zone is None:
        zone = tz.gettz(DEFAULT_TIMEZONE)
    return as_utc(now or utcnow()).astimezone(zone)


def week_start(day: date) -> date:
    """Most recent Sunday, inclusive."""
    # Monday == 0 ... Sunday == 6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return first, last


def local_day_bounds(timezone_name: Optional[str], now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """UTC start and end of the local calendar day containing `now`."""
    local = local_now(timezone_name, now)
    start = datetime.combine(local.date(), time.min, tzinfo=local.tzinfo)
    end = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=local.tzinfo)
    return as_utc(start), as_utc(end)
