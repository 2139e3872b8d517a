"""Daily availability for the single bookable resource.

Occupied intervals come from every configured busy-time source for the
date; candidate start times are generated inside business hours and kept
only when they clear every occupied interval by the policy buffer. The
same aggregation backs the authoritative check run when a booking is
submitted.
"""

import asyncio
import calendar
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Sequence

from detailing.integrations.google_calendar import CalendarNotConfigured
from detailing.scheduling.intervals import CandidateSlot, OccupiedInterval, find_conflicts, is_slot_conflicting
from detailing.scheduling.policy import SchedulingPolicy
from detailing.scheduling.sources import BusyIntervalSource, default_sources
from detailing.scheduling.timezone import (
    format_in_zone,
    normalize_date,
    normalize_time,
    parse_date,
    to_zone,
    zoned_to_utc,
)

logger = logging.getLogger(__name__)

MONTH_PREFETCH_CONCURRENCY = 4


class BookingRejected(Exception):
    detail = 'This booking cannot be accepted.'

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class InvalidDateError(BookingRejected):
    detail = 'Please choose a valid date.'


class UnparseableTimeError(BookingRejected):
    detail = 'Please choose a valid time.'


class PastDateError(BookingRejected):
    detail = 'Bookings must be made for a future date.'


class ExcludedDayError(BookingRejected):
    detail = 'We are closed on that day. Please choose another date.'


class OutsideBusinessHoursError(BookingRejected):
    detail = 'That time is outside our business hours.'


class SlotConflictError(BookingRejected):
    detail = 'This time is no longer available. Please choose another slot.'

    def __init__(self, conflicts: Sequence[OccupiedInterval]) -> None:
        super().__init__()
        self.conflicts = list(conflicts)


@dataclass(frozen=True)
class ValidatedSlot:
    date: str
    time_value: str
    start: datetime
    end: datetime
    label: str


async def _collect(source: BusyIntervalSource, date_str: str) -> list[OccupiedInterval]:
    try:
        return list(await asyncio.wait_for(source.fetch_for_date(date_str), timeout=source.timeout_seconds))
    except asyncio.TimeoutError:
        logger.warning('[availability] %s timed out after %ss for %s', source.name, source.timeout_seconds, date_str)
    except CalendarNotConfigured as exc:
        logger.warning('[availability] %s skipped for %s: %s', source.name, date_str, exc)
    except Exception:
        logger.exception('[availability] Failed to fetch busy intervals from %s for %s', source.name, date_str)
    return []


async def get_occupied_slots_for_date(
    date_str: str,
    sources: Sequence[BusyIntervalSource] | None = None,
) -> list[OccupiedInterval]:
    """Return every busy interval on ``date_str``; a failing source contributes nothing."""
    normalized_date = normalize_date(date_str)
    if normalized_date is None:
        return []
    if sources is None:
        sources = default_sources()

    results = await asyncio.gather(*(_collect(source, normalized_date) for source in sources))
    return [interval for intervals in results for interval in intervals]


def _minutes_since_midnight(value) -> int:
    return value.hour * 60 + value.minute


def generate_candidates(
    date_str: str,
    duration_minutes: int,
    occupied: Sequence[OccupiedInterval] = (),
    policy: SchedulingPolicy | None = None,
) -> list[CandidateSlot]:
    policy = policy or SchedulingPolicy.from_config()
    if duration_minutes <= 0:
        raise ValueError('duration_minutes must be positive.')

    civil_date = parse_date(date_str)
    if civil_date is None or policy.is_excluded_weekday(civil_date.weekday()):
        return []
    if duration_minutes > policy.business_minutes:
        return []

    business_end = zoned_to_utc(date_str, policy.close_time.strftime('%H:%M'), policy.time_zone)
    duration = timedelta(minutes=duration_minutes)

    candidates: list[CandidateSlot] = []
    minute = _minutes_since_midnight(policy.open_time)
    last_minute = _minutes_since_midnight(policy.close_time)
    while minute <= last_minute:
        time_value = f'{minute // 60:02d}:{minute % 60:02d}'
        minute += policy.slot_increment_minutes

        slot_start = zoned_to_utc(date_str, time_value, policy.time_zone)
        slot_end = slot_start + duration
        if slot_end > business_end:
            continue
        if is_slot_conflicting(slot_start, slot_end, occupied, policy.buffer_minutes):
            continue

        candidates.append(
            CandidateSlot(
                start=slot_start,
                end=slot_end,
                time=time_value,
                label=format_in_zone(slot_start, policy.time_zone),
            )
        )

    return candidates


def is_bookable_date(civil_date: date, now: datetime, policy: SchedulingPolicy) -> bool:
    """Only dates after today (in the service zone) on open weekdays can be booked."""
    today = to_zone(now, policy.time_zone).date()
    return civil_date > today and not policy.is_excluded_weekday(civil_date.weekday())


async def get_available_slots(
    date_str: str,
    duration_minutes: int,
    now: datetime,
    policy: SchedulingPolicy | None = None,
    sources: Sequence[BusyIntervalSource] | None = None,
) -> list[CandidateSlot]:
    policy = policy or SchedulingPolicy.from_config()
    civil_date = parse_date(date_str)
    if civil_date is None:
        raise InvalidDateError()
    if not is_bookable_date(civil_date, now, policy):
        return []

    date_str = civil_date.isoformat()
    occupied = await get_occupied_slots_for_date(date_str, sources)
    return generate_candidates(date_str, duration_minutes, occupied, policy)


async def get_month_availability(
    year: int,
    month: int,
    duration_minutes: int,
    now: datetime,
    policy: SchedulingPolicy | None = None,
    sources: Sequence[BusyIntervalSource] | None = None,
) -> list[tuple[str, bool]]:
    """Report, for each day of the month, whether at least one slot is free."""
    policy = policy or SchedulingPolicy.from_config()
    _, days_in_month = calendar.monthrange(year, month)
    days = [date(year, month, day) for day in range(1, days_in_month + 1)]
    semaphore = asyncio.Semaphore(MONTH_PREFETCH_CONCURRENCY)

    async def has_availability(civil_date: date) -> bool:
        if not is_bookable_date(civil_date, now, policy):
            return False
        async with semaphore:
            slots = await get_available_slots(civil_date.isoformat(), duration_minutes, now, policy, sources)
        return bool(slots)

    flags = await asyncio.gather(*(has_availability(civil_date) for civil_date in days))
    return [(civil_date.isoformat(), flag) for civil_date, flag in zip(days, flags)]


async def validate_requested_slot(
    date_str: str,
    requested_time: str,
    duration_minutes: int,
    now: datetime,
    policy: SchedulingPolicy | None = None,
    sources: Sequence[BusyIntervalSource] | None = None,
) -> ValidatedSlot:
    """Authoritatively accept or reject a requested booking slot.

    Re-runs the full aggregation against the exact requested span; a
    result computed earlier for display is never trusted.
    """
    policy = policy or SchedulingPolicy.from_config()

    civil_date = parse_date(date_str)
    if civil_date is None:
        raise InvalidDateError()
    date_str = civil_date.isoformat()

    time_value = normalize_time(requested_time)
    if time_value is None:
        raise UnparseableTimeError()

    if policy.is_excluded_weekday(civil_date.weekday()):
        raise ExcludedDayError()
    if not is_bookable_date(civil_date, now, policy):
        raise PastDateError()

    slot_start = zoned_to_utc(date_str, time_value, policy.time_zone)
    slot_end = slot_start + timedelta(minutes=duration_minutes)
    business_start = zoned_to_utc(date_str, policy.open_time.strftime('%H:%M'), policy.time_zone)
    business_end = zoned_to_utc(date_str, policy.close_time.strftime('%H:%M'), policy.time_zone)
    if slot_start < business_start or slot_end > business_end:
        raise OutsideBusinessHoursError()

    occupied = await get_occupied_slots_for_date(date_str, sources)
    conflicts = find_conflicts(slot_start, slot_end, occupied, policy.buffer_minutes)
    if conflicts:
        logger.info(
            '[availability] Rejected %s %s: conflicts with %s',
            date_str,
            time_value,
            [(conflict.source.value, conflict.id, conflict.title, conflict.start.isoformat()) for conflict in conflicts],
        )
        raise SlotConflictError(conflicts)

    return ValidatedSlot(
        date=date_str,
        time_value=time_value,
        start=slot_start,
        end=slot_end,
        label=format_in_zone(slot_start, policy.time_zone),
    )


_date_locks: 'weakref.WeakValueDictionary[str, asyncio.Lock]' = weakref.WeakValueDictionary()


@asynccontextmanager
async def date_lock(date_str: str) -> AsyncIterator[None]:
    """Serialize check-then-write for one civil date within this process."""
    lock = _date_locks.get(date_str)
    if lock is None:
        lock = asyncio.Lock()
        _date_locks[date_str] = lock
    async with lock:
        yield
