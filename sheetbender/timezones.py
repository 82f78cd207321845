# sheetbender/timezones.py
"""
Timezone resolution and date rendering for date fields.

Date fields are stored as instants. When exported they are shown in a
timezone chosen per field::

    gmt flag set        -> +00:00
    timezone 'server'   -> the system default timezone
    timezone 'client'   -> the timezone of the request, else the system default
    any other timezone  -> used as given ('+08:00', 'Asia/Shanghai', ...)
    no timezone         -> the system default timezone

The system default comes from settings['default_timezone'].
"""

import datetime as dt
import re
from typing import Any, Optional

import pytz
from dateutil import parser as dateutil_parser

from .defaults import settings

__all__ = ['GMT_OFFSET', 'TimezoneMode', 'resolve_timezone', 'get_tzinfo',
           'to_instant', 'format_instant']

GMT_OFFSET = '+00:00'

TIMEZONE_OFFSETS = {
    'Z': dt.timezone.utc,
    'UTC': dt.timezone.utc,
    'GMT': dt.timezone.utc,
}

offsetPattern = re.compile(r'^([+-])(\d{2}):?(\d{2})$')


class TimezoneMode:
    """Special values of a date field's ``timezone`` option."""
    SERVER = 'server'
    CLIENT = 'client'


def resolve_timezone(mode: Optional[str],
                     context_timezone: Optional[str] = None,
                     default_timezone: Optional[str] = None,
                     gmt: bool = False) -> str:
    """
    Work out the display timezone of a date field. First match wins.

    Args:
        mode: the field's timezone option ('server', 'client', a fixed value or None)
        context_timezone: timezone supplied by the export request, if any
        default_timezone: system default; settings['default_timezone'] when None
        gmt: the field's GMT flag

    Returns:
        Timezone string, e.g. '+08:00' or 'Asia/Shanghai'

    Example:
        >>> resolve_timezone('client', '+08:00', '+00:00')
        '+08:00'
        >>> resolve_timezone(None, '+08:00', '+00:00', gmt=True)
        '+00:00'
    """
    if default_timezone is None:
        default_timezone = settings.get('default_timezone') or GMT_OFFSET

    if gmt:
        return GMT_OFFSET
    if mode == TimezoneMode.SERVER:
        return default_timezone
    if mode == TimezoneMode.CLIENT:
        return context_timezone or default_timezone
    if mode:
        return mode
    return default_timezone


def get_tzinfo(name: str) -> dt.tzinfo:
    """
    Convert a timezone string into a tzinfo object.

    Args:
        name: 'Z', 'UTC', 'GMT', an offset like '+05:30' or '-0800',
              or an IANA zone name like 'America/New_York'

    Raises:
        ValueError: If the timezone is not recognised
    """
    if not name:
        raise ValueError("Timezone is required")
    tz_str = name.strip()

    if tz_str.upper() in TIMEZONE_OFFSETS:
        return TIMEZONE_OFFSETS[tz_str.upper()]

    offset_match = offsetPattern.match(tz_str)
    if offset_match:
        sign = 1 if offset_match.group(1) == '+' else -1
        hours = int(offset_match.group(2))
        minutes = int(offset_match.group(3))
        total_minutes = sign * (hours * 60 + minutes)
        if total_minutes == 0:
            return dt.timezone.utc
        return dt.timezone(dt.timedelta(minutes=total_minutes))

    try:
        return pytz.timezone(tz_str)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone: {name}")


def to_instant(value: Any) -> Optional[dt.datetime]:
    """
    Normalize a stored date value to an aware datetime.

    Accepts datetimes (naive ones are taken as UTC), dates (midnight UTC),
    epoch milliseconds and ISO-8601 strings.

    Raises:
        ValueError: if the value cannot be read as a point in time
    """
    if value is None or value == '':
        return None
    if isinstance(value, dt.datetime):
        instant = value
    elif isinstance(value, dt.date):
        instant = dt.datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return dt.datetime.fromtimestamp(value / 1000, tz=dt.timezone.utc)
    elif isinstance(value, str):
        try:
            instant = dateutil_parser.isoparse(value.strip())
        except ValueError:
            instant = dateutil_parser.parse(value.strip())
    else:
        raise ValueError(f"Not a date value: {value!r}")

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=dt.timezone.utc)
    return instant


def format_instant(value: Any, timezone: str, show_time: bool = False) -> Optional[str]:
    """
    Render a date value in the given timezone.

    Uses ``YYYY-MM-DD`` (settings['date_format']) or, with ``show_time``,
    ``YYYY-MM-DD HH:mm:ss`` (settings['datetime_format']). Plain ``date``
    values carry no time of day and are rendered as-is.

    Example:
        >>> format_instant('2024-05-10T01:42:35.000Z', '+08:00', show_time=True)
        '2024-05-10 09:42:35'
    """
    date_format = settings.get('date_format', '%Y-%m-%d')
    datetime_format = settings.get('datetime_format', '%Y-%m-%d %H:%M:%S')

    if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
        return value.strftime(datetime_format if show_time else date_format)

    instant = to_instant(value)
    if instant is None:
        return None
    local = instant.astimezone(get_tzinfo(timezone))
    return local.strftime(datetime_format if show_time else date_format)
