"""
Datetime utility functions.

League dates are plain calendar dates. Anything that depends on "today" or on
week boundaries takes the caller's timezone explicitly (a UTC offset in
minutes, or an IANA zone name) instead of using the server clock's zone.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by some drivers) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value


def local_now(
    tz_offset_minutes: Optional[int] = None,
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Current wall-clock time in the caller's timezone.

    The offset follows the convention of ``Date.getTimezoneOffset()`` on the
    client: minutes to ADD to local time to get UTC (UTC+5:30 is -330).
    An IANA ``tz_name`` takes precedence over the offset.

    Raises:
        ValueError: if tz_name is not a known zone
    """
    now = ensure_aware(now) or utcnow()
    if tz_name:
        try:
            zone = pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {tz_name}")
        return now.astimezone(zone)
    offset = tz_offset_minutes or 0
    return now.astimezone(pytz.UTC) - timedelta(minutes=offset)


def local_today(
    tz_offset_minutes: Optional[int] = None,
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> date:
    """Calendar date in the caller's timezone."""
    return local_now(tz_offset_minutes, tz_name, now).date()


def week_start_sunday(day: date) -> date:
    """First day (Sunday) of the Sun-Sat week containing ``day``."""
    # Monday=0 ... Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def parse_ymd(value: Union[str, date, None]) -> Optional[date]:
    """
    Parse a YYYY-MM-DD calendar string.

    Returns None for anything that is not a valid calendar date in that exact
    format, so callers can drop malformed input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value.strip()) != 10:
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def format_ymd(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def end_of_local_day_after(
    moment: datetime, tz_offset_minutes: Optional[int] = None, days: int = 1
) -> datetime:
    """
    UTC instant of 23:59:59.999 local time ``days`` days after ``moment``.

    Used as the deadline for re-uploading a rejected entry.
    """
    offset = tz_offset_minutes or 0
    local_moment = ensure_aware(moment).astimezone(pytz.UTC) - timedelta(minutes=offset)
    deadline_day = local_moment.date() + timedelta(days=days)
    local_deadline = datetime(
        deadline_day.year, deadline_day.month, deadline_day.day, 23, 59, 59, 999000, tzinfo=pytz.UTC
    )
    return local_deadline + timedelta(minutes=offset)


def league_days(start: date, end: date) -> int:
    """Number of calendar days in an inclusive range (0 when inverted)."""
    return max(0, (end - start).days + 1)
