"""Datetime utilities for timezone-aware timestamps and site-local days.

Every calendar-day decision in the bridge (membership validity, "yesterday",
attendance dates) is made in the single site timezone from settings.

Usage:
    from libs.common.datetime_utils import end_of_day, site_timezone, utc_now

    tz = site_timezone()
    expires = end_of_day(validity_date, tz)
"""

from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

from libs.common.config import get_settings

# Last representable moment of a day at millisecond precision.
END_OF_DAY = time(23, 59, 59, 999000)

DEVICE_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def site_timezone(name: str | None = None) -> tzinfo:
    """Resolve the site timezone (defaults to settings.TIMEZONE)."""
    return ZoneInfo(name or get_settings().TIMEZONE)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    """Return 23:59:59.999 of ``day`` in ``tz``."""
    return datetime.combine(day, END_OF_DAY, tzinfo=tz)


def to_site_time(value: datetime, tz: tzinfo) -> datetime:
    """Convert to the site timezone; naive values are taken as already site-local."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def format_device_time(value: datetime, tz: tzinfo) -> str:
    """Format as the device's local ``YYYY-MM-DDTHH:MM:SS``."""
    return to_site_time(value, tz).strftime(DEVICE_DATETIME_FORMAT)


def format_device_query_time(value: datetime, tz: tzinfo) -> str:
    """Format with an explicit UTC offset, as the device event search expects."""
    return to_site_time(value, tz).replace(microsecond=0).isoformat()
