"""Busy-time sources consulted by the availability aggregator.

Each source answers one question, "what is busy on this civil date?", and
may raise freely; the aggregator owns the degrade-on-failure policy.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Protocol

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from detailing.core import config
from detailing.database import SessionLocal
from detailing.integrations.google_calendar import GoogleCalendarClient, GoogleCalendarCredentials
from detailing.models.booking import Booking
from detailing.models.service import Service
from detailing.scheduling.intervals import IntervalSource, OccupiedInterval
from detailing.scheduling.timezone import (
    SERVICE_TIME_ZONE,
    day_bounds_utc,
    normalize_date,
    normalize_time,
    parse_instant,
    zoned_to_utc,
)

logger = logging.getLogger(__name__)

CANCELLED_STATUS = 'cancelled'


class BusyIntervalSource(Protocol):
    name: str
    timeout_seconds: float

    async def fetch_for_date(self, date_str: str) -> list[OccupiedInterval]:
        ...


def _event_boundary(boundary: dict[str, Any] | None, time_zone: str) -> datetime | None:
    if not boundary:
        return None
    if boundary.get('dateTime'):
        return parse_instant(boundary['dateTime'])
    if boundary.get('date'):
        # All-day events carry civil dates; the end date is exclusive.
        return zoned_to_utc(boundary['date'], '00:00', time_zone)
    return None


def event_to_interval(event: dict[str, Any], time_zone: str = SERVICE_TIME_ZONE) -> OccupiedInterval | None:
    start = _event_boundary(event.get('start'), time_zone)
    end = _event_boundary(event.get('end'), time_zone)
    if start is None or end is None or end <= start:
        return None
    return OccupiedInterval(
        start=start,
        end=end,
        source=IntervalSource.EXTERNAL_CALENDAR,
        title=event.get('summary') or '',
        id=event.get('id'),
    )


class GoogleCalendarSource:
    name = IntervalSource.EXTERNAL_CALENDAR.value

    def __init__(
        self,
        client: GoogleCalendarClient | None = None,
        time_zone: str = SERVICE_TIME_ZONE,
        timeout_seconds: float = config.CALENDAR_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client or GoogleCalendarClient(GoogleCalendarCredentials.from_config())
        self.time_zone = time_zone
        self.timeout_seconds = timeout_seconds

    async def fetch_for_date(self, date_str: str) -> list[OccupiedInterval]:
        bounds = day_bounds_utc(date_str, self.time_zone)
        if bounds.start is None:
            return []

        events = await self.client.list_events(bounds.start, bounds.end)
        intervals: list[OccupiedInterval] = []
        for event in events:
            interval = event_to_interval(event, self.time_zone)
            if interval is None:
                logger.debug('Skipping calendar event %s without a usable span', event.get('id'))
                continue
            intervals.append(interval)
        return intervals


def resolve_booking_start(booking: Any, time_zone: str = SERVICE_TIME_ZONE) -> datetime | None:
    """Resolve a stored booking's start instant.

    Historical records hold the start as a normalized ``HH:MM`` value, an
    ISO instant, or only the display string; they are tried in that order.
    """
    time_value = normalize_time(getattr(booking, 'time_value', None))
    if time_value:
        start = zoned_to_utc(booking.date, time_value, time_zone)
        if start is not None:
            return start

    start = parse_instant(getattr(booking, 'time_iso', None))
    if start is not None:
        return start

    display_time = normalize_time(getattr(booking, 'time', None))
    if display_time:
        return zoned_to_utc(booking.date, display_time, time_zone)

    return None


def lookup_service_durations(db: Session, titles: Iterable[str]) -> dict[str, int]:
    """Map lower-cased service titles to their duration in minutes (case-insensitive exact match)."""
    wanted = {title.strip().lower() for title in titles if title and title.strip()}
    if not wanted:
        return {}

    rows = db.query(Service.title, Service.duration_minutes).filter(
        func.lower(Service.title).in_(sorted(wanted)),
    ).all()

    durations: dict[str, int] = {}
    for title, duration_minutes in rows:
        if isinstance(duration_minutes, int) and duration_minutes > 0:
            durations[title.strip().lower()] = duration_minutes
    return durations


def get_service_duration_minutes(db: Session, title: str | None, default: int) -> int:
    if not title:
        return default
    return lookup_service_durations(db, [title]).get(title.strip().lower(), default)


class BookingStoreSource:
    name = IntervalSource.INTERNAL_BOOKING.value

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        time_zone: str = SERVICE_TIME_ZONE,
        default_duration_minutes: int = config.DEFAULT_SERVICE_DURATION_MINUTES,
        timeout_seconds: float = config.BOOKING_STORE_TIMEOUT_SECONDS,
    ) -> None:
        self.session_factory = session_factory
        self.time_zone = time_zone
        self.default_duration_minutes = default_duration_minutes
        self.timeout_seconds = timeout_seconds

    async def fetch_for_date(self, date_str: str) -> list[OccupiedInterval]:
        return await asyncio.to_thread(self.load_for_date, date_str)

    def load_for_date(self, date_str: str) -> list[OccupiedInterval]:
        date_str = normalize_date(date_str)
        if date_str is None:
            return []

        db = self.session_factory()
        try:
            bookings = db.query(Booking).filter(
                Booking.date == date_str,
                or_(Booking.status.is_(None), Booking.status != CANCELLED_STATUS),
            ).all()
            durations = lookup_service_durations(db, (booking.service for booking in bookings))
        finally:
            db.close()

        intervals: list[OccupiedInterval] = []
        for booking in bookings:
            start = resolve_booking_start(booking, self.time_zone)
            if start is None:
                logger.warning('Skipping booking %s on %s with unparseable time %r', booking.id, date_str, booking.time)
                continue

            duration_minutes = durations.get((booking.service or '').strip().lower(), self.default_duration_minutes)
            intervals.append(
                OccupiedInterval(
                    start=start,
                    end=start + timedelta(minutes=duration_minutes),
                    source=IntervalSource.INTERNAL_BOOKING,
                    id=str(booking.id),
                )
            )
        return intervals


def default_sources() -> list[BusyIntervalSource]:
    return [GoogleCalendarSource(), BookingStoreSource()]
