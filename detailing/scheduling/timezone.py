"""Civil-time helpers for the business's fixed service time zone.

Every scheduling decision is made against the service zone's wall clock,
never the server's or the visitor's. Values cross this module's boundary
as ``YYYY-MM-DD`` / ``HH:MM`` strings on the civil side and as aware UTC
datetimes on the absolute side.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from detailing.core import config

SERVICE_TIME_ZONE = config.SERVICE_TIME_ZONE

_DATE_PATTERN = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$', re.ASCII)
_CANONICAL_TIME_PATTERN = re.compile(r'^(\d{2}):(\d{2})$', re.ASCII)
_TWENTY_FOUR_HOUR_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$', re.ASCII)
_TWELVE_HOUR_PATTERN = re.compile(r'^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$', re.ASCII)


class DayBounds(NamedTuple):
    start: datetime | None
    end: datetime | None


def normalize_time(value: str | None) -> str | None:
    """Return ``value`` as a zero-padded ``HH:MM`` string, or None when it is not a time.

    Accepts 24-hour ``H:MM``/``HH:MM`` and 12-hour forms with a required
    am/pm marker and optional minutes (``9am``, ``9:30 PM``, ``9:30 p.m.``).
    """
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None

    match = _TWENTY_FOUR_HOUR_PATTERN.match(raw)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if 0 <= hours <= 23 and 0 <= minutes <= 59:
            return f'{hours:02d}:{minutes:02d}'
        return None

    collapsed = re.sub(r'\s+', ' ', raw.lower().replace('.', '')).strip()
    match = _TWELVE_HOUR_PATTERN.match(collapsed)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2) or '0')
    period = match.group(3)

    if not 1 <= hours <= 12 or not 0 <= minutes <= 59:
        return None
    if period == 'pm' and hours != 12:
        hours += 12
    if period == 'am' and hours == 12:
        hours = 0

    return f'{hours:02d}:{minutes:02d}'


def parse_date(date_str: str | None) -> date | None:
    if not date_str:
        return None
    match = _DATE_PATTERN.match(str(date_str).strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def normalize_date(date_str: str | None) -> str | None:
    """Return ``date_str`` as a canonical ``YYYY-MM-DD`` string, or None when it is not a date."""
    civil_date = parse_date(date_str)
    return civil_date.isoformat() if civil_date else None


def parse_canonical_time(time24h: str | None) -> time | None:
    if not time24h:
        return None
    match = _CANONICAL_TIME_PATTERN.match(str(time24h).strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


def get_zone(zone: str = SERVICE_TIME_ZONE) -> ZoneInfo:
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f'Unknown time zone: {zone}') from exc


def zoned_to_utc(date_str: str | None, time24h: str | None, zone: str = SERVICE_TIME_ZONE) -> datetime | None:
    """Convert a civil date and ``HH:MM`` time in ``zone`` to an aware UTC datetime.

    Wall-clock times that fall in a daylight-saving gap resolve with the
    offset in effect before the transition.
    """
    civil_date = parse_date(date_str)
    civil_time = parse_canonical_time(time24h)
    if civil_date is None or civil_time is None:
        return None
    local = datetime.combine(civil_date, civil_time, tzinfo=get_zone(zone))
    return local.astimezone(timezone.utc)


def day_bounds_utc(date_str: str | None, zone: str = SERVICE_TIME_ZONE) -> DayBounds:
    start = zoned_to_utc(date_str, '00:00', zone)
    if start is None:
        return DayBounds(None, None)
    next_day = parse_date(date_str) + timedelta(days=1)
    next_start = zoned_to_utc(next_day.isoformat(), '00:00', zone)
    return DayBounds(start, next_start - timedelta(milliseconds=1))


def to_zone(instant: datetime, zone: str = SERVICE_TIME_ZONE) -> datetime:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(get_zone(zone))


def format_in_zone(instant: datetime | None, zone: str = SERVICE_TIME_ZONE) -> str | None:
    """Render ``instant`` as ``h:mm AM``/``h:mm PM`` wall-clock time in ``zone``."""
    if instant is None:
        return None
    local = to_zone(instant, zone)
    hour = local.hour % 12 or 12
    period = 'AM' if local.hour < 12 else 'PM'
    return f'{hour}:{local.minute:02d} {period}'


def parse_instant(value: str | None) -> datetime | None:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if not value:
        return None
    raw = str(value).strip()
    if raw.endswith('Z') or raw.endswith('z'):
        raw = raw[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
