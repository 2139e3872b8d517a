import asyncio
import logging
from datetime import datetime, time, timezone

import pytest

from detailing.integrations.google_calendar import CalendarNotConfigured
from detailing.scheduling.availability import (
    ExcludedDayError,
    InvalidDateError,
    OutsideBusinessHoursError,
    PastDateError,
    SlotConflictError,
    UnparseableTimeError,
    date_lock,
    generate_candidates,
    get_available_slots,
    get_month_availability,
    get_occupied_slots_for_date,
    validate_requested_slot,
)
from detailing.scheduling.intervals import IntervalSource, OccupiedInterval
from detailing.scheduling.policy import SchedulingPolicy
from detailing.scheduling.timezone import zoned_to_utc

WEDNESDAY = '2025-06-11'
MONDAY = '2025-06-09'
SUNDAY = '2025-06-15'
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def busy(date_str: str, start: str, end: str, source=IntervalSource.INTERNAL_BOOKING) -> OccupiedInterval:
    return OccupiedInterval(
        start=zoned_to_utc(date_str, start, 'America/Halifax'),
        end=zoned_to_utc(date_str, end, 'America/Halifax'),
        source=source,
    )


def slot_times(slots) -> list[str]:
    return [slot.time for slot in slots]


def test_open_day_without_bookings_offers_every_half_hour(policy) -> None:
    slots = generate_candidates(WEDNESDAY, 60, [], policy)

    assert len(slots) == 19
    assert slots[0].time == '08:00'
    assert slots[-1].time == '17:00'
    assert slots[0].label == '8:00 AM'
    assert slots[0].start == datetime(2025, 6, 11, 11, 0, tzinfo=timezone.utc)
    assert slots[0].end == datetime(2025, 6, 11, 12, 0, tzinfo=timezone.utc)


def test_booking_excludes_slots_within_buffer(policy) -> None:
    slots = generate_candidates(WEDNESDAY, 60, [busy(WEDNESDAY, '09:00', '10:00')], policy)

    times = slot_times(slots)
    assert times[0] == '10:30'
    for excluded in ('08:00', '08:30', '09:00', '09:30', '10:00'):
        assert excluded not in times
    assert times[-1] == '17:00'


@pytest.mark.parametrize('date_str', [MONDAY, SUNDAY])
@pytest.mark.parametrize('duration', [30, 60, 180])
def test_excluded_weekdays_have_no_candidates(policy, date_str: str, duration: int) -> None:
    assert generate_candidates(date_str, duration, [], policy) == []


def test_slots_must_end_by_closing_time(policy) -> None:
    slots = generate_candidates(WEDNESDAY, 90, [], policy)

    assert slots[-1].time == '16:30'
    assert all(slot.end <= zoned_to_utc(WEDNESDAY, '18:00', 'America/Halifax') for slot in slots)


def test_duration_longer_than_business_day_has_no_candidates(policy) -> None:
    assert generate_candidates(WEDNESDAY, 601, [], policy) == []
    assert slot_times(generate_candidates(WEDNESDAY, 600, [], policy)) == ['08:00']


def test_non_positive_duration_is_rejected(policy) -> None:
    with pytest.raises(ValueError):
        generate_candidates(WEDNESDAY, 0, [], policy)


def test_invalid_date_has_no_candidates(policy) -> None:
    assert generate_candidates('2025-02-30', 60, [], policy) == []


def test_alternate_policy_window() -> None:
    policy = SchedulingPolicy(
        time_zone='America/Halifax',
        open_time=time(9, 0),
        close_time=time(12, 0),
        slot_increment_minutes=60,
        buffer_minutes=0,
        excluded_weekdays=frozenset(),
    )

    assert slot_times(generate_candidates(SUNDAY, 60, [], policy)) == ['09:00', '10:00', '11:00']
    assert slot_times(generate_candidates(SUNDAY, 60, [busy(SUNDAY, '10:00', '11:00')], policy)) == ['09:00', '11:00']


def test_policy_rejects_inverted_hours() -> None:
    with pytest.raises(ValueError):
        SchedulingPolicy(open_time=time(18, 0), close_time=time(8, 0))


def test_aggregator_concatenates_all_sources(fake_source) -> None:
    calendar = fake_source([busy(WEDNESDAY, '08:00', '09:00', IntervalSource.EXTERNAL_CALENDAR)])
    bookings = fake_source([busy(WEDNESDAY, '13:00', '14:00')])

    occupied = asyncio.run(get_occupied_slots_for_date(WEDNESDAY, [calendar, bookings]))

    assert {interval.source for interval in occupied} == {
        IntervalSource.EXTERNAL_CALENDAR,
        IntervalSource.INTERNAL_BOOKING,
    }
    assert calendar.calls == [WEDNESDAY]
    assert bookings.calls == [WEDNESDAY]


def test_aggregator_degrades_when_calendar_fails(fake_source, caplog) -> None:
    calendar = fake_source(error=RuntimeError('calendar down'), name='external-calendar')
    bookings = fake_source([busy(WEDNESDAY, '13:00', '14:00')])

    with caplog.at_level(logging.ERROR):
        occupied = asyncio.run(get_occupied_slots_for_date(WEDNESDAY, [calendar, bookings]))

    assert occupied == [busy(WEDNESDAY, '13:00', '14:00')]
    assert 'external-calendar' in caplog.text


def test_aggregator_treats_timeout_as_empty(fake_source, caplog) -> None:
    slow_calendar = fake_source([busy(WEDNESDAY, '08:00', '09:00')], delay=1.0, timeout_seconds=0.01)
    bookings = fake_source([busy(WEDNESDAY, '13:00', '14:00')])

    with caplog.at_level(logging.WARNING):
        occupied = asyncio.run(get_occupied_slots_for_date(WEDNESDAY, [slow_calendar, bookings]))

    assert occupied == [busy(WEDNESDAY, '13:00', '14:00')]
    assert 'timed out' in caplog.text


def test_aggregator_skips_unconfigured_calendar(fake_source) -> None:
    calendar = fake_source(error=CalendarNotConfigured('missing env'))

    assert asyncio.run(get_occupied_slots_for_date(WEDNESDAY, [calendar])) == []


def test_available_slots_use_bookings_when_calendar_fails(policy, fake_source) -> None:
    sources = [
        fake_source(error=ConnectionError('unreachable')),
        fake_source([busy(WEDNESDAY, '09:00', '10:00')]),
    ]

    slots = asyncio.run(get_available_slots(WEDNESDAY, 60, NOW, policy, sources))

    assert slots == generate_candidates(WEDNESDAY, 60, [busy(WEDNESDAY, '09:00', '10:00')], policy)
    assert slots[0].time == '10:30'


def test_available_slots_are_idempotent(policy, fake_source) -> None:
    sources = [fake_source([busy(WEDNESDAY, '12:00', '13:30')])]

    first = asyncio.run(get_available_slots(WEDNESDAY, 60, NOW, policy, sources))
    second = asyncio.run(get_available_slots(WEDNESDAY, 60, NOW, policy, sources))

    assert first == second


def test_today_and_past_dates_are_not_offered(policy, fake_source) -> None:
    now = datetime(2025, 6, 11, 12, 0, tzinfo=timezone.utc)
    source = fake_source()

    assert asyncio.run(get_available_slots(WEDNESDAY, 60, now, policy, [source])) == []
    assert asyncio.run(get_available_slots('2025-06-04', 60, now, policy, [source])) == []
    assert source.calls == []


def test_available_slots_reject_invalid_date(policy, fake_source) -> None:
    with pytest.raises(InvalidDateError):
        asyncio.run(get_available_slots('06/11/2025', 60, NOW, policy, [fake_source()]))


def test_month_availability_flags_each_day(policy, fake_source) -> None:
    now = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)
    fully_booked = '2025-06-12'
    source = fake_source(by_date={fully_booked: [busy(fully_booked, '07:00', '18:00')]})

    days = dict(asyncio.run(get_month_availability(2025, 6, 60, now, policy, [source])))

    assert len(days) == 30
    assert days['2025-06-10'] is False
    assert days['2025-06-11'] is True
    assert days[fully_booked] is False
    assert days['2025-06-13'] is True
    assert days['2025-06-15'] is False
    assert days['2025-06-16'] is False
    assert '2025-06-01' not in source.calls


def test_validate_requested_slot_accepts_free_slot(policy, fake_source) -> None:
    slot = asyncio.run(validate_requested_slot(WEDNESDAY, '10:30 AM', 60, NOW, policy, [fake_source()]))

    assert slot.time_value == '10:30'
    assert slot.label == '10:30 AM'
    assert slot.start == datetime(2025, 6, 11, 13, 30, tzinfo=timezone.utc)
    assert slot.end == datetime(2025, 6, 11, 14, 30, tzinfo=timezone.utc)


def test_validate_requested_slot_reports_conflicts(policy, fake_source) -> None:
    existing = busy(WEDNESDAY, '09:00', '10:00')

    with pytest.raises(SlotConflictError) as exception_info:
        asyncio.run(validate_requested_slot(WEDNESDAY, '10:00', 60, NOW, policy, [fake_source([existing])]))

    assert exception_info.value.conflicts == [existing]
    assert exception_info.value.detail == 'This time is no longer available. Please choose another slot.'


@pytest.mark.parametrize(
    ('date_str', 'requested_time', 'error'),
    [
        ('2025-06-31', '10:00', InvalidDateError),
        (WEDNESDAY, '25:00', UnparseableTimeError),
        (WEDNESDAY, 'whenever', UnparseableTimeError),
        (MONDAY, '10:00', ExcludedDayError),
        ('2025-05-28', '10:00', PastDateError),
        (WEDNESDAY, '7:30 AM', OutsideBusinessHoursError),
        (WEDNESDAY, '5:30 PM', OutsideBusinessHoursError),
    ],
)
def test_validate_requested_slot_rejections(policy, fake_source, date_str, requested_time, error) -> None:
    with pytest.raises(error):
        asyncio.run(validate_requested_slot(date_str, requested_time, 60, NOW, policy, [fake_source()]))


def test_date_lock_serializes_same_date() -> None:
    events: list[str] = []

    async def book(name: str) -> None:
        async with date_lock(WEDNESDAY):
            events.append(f'{name}-start')
            await asyncio.sleep(0.01)
            events.append(f'{name}-end')

    async def main() -> None:
        await asyncio.gather(book('a'), book('b'))

    asyncio.run(main())

    assert events == ['a-start', 'a-end', 'b-start', 'b-end']
