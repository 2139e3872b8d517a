import asyncio

import pytest
from fastapi import HTTPException

from detailing.models.booking import Booking
from detailing.models.service import Service
from detailing.routes.availability_routes import (
    list_available_slots,
    list_month_availability,
    list_occupied,
    require_date,
)
from detailing.scheduling.intervals import IntervalSource, OccupiedInterval
from detailing.scheduling.sources import BookingStoreSource
from detailing.scheduling.timezone import zoned_to_utc

HALIFAX = 'America/Halifax'


def test_require_date_returns_canonical_date() -> None:
    assert require_date(' 2025-06-11 ') == '2025-06-11'


@pytest.mark.parametrize('value', ['', '2025-6-11', '2025-02-30', 'tomorrow'])
def test_require_date_rejects_bad_values(value: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_date(value)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Missing or invalid date (YYYY-MM-DD).'


def test_list_occupied_hides_event_details(fake_source) -> None:
    interval = OccupiedInterval(
        start=zoned_to_utc('2025-06-11', '13:00', HALIFAX),
        end=zoned_to_utc('2025-06-11', '14:00', HALIFAX),
        source=IntervalSource.EXTERNAL_CALENDAR,
        title='Dentist',
        id='evt-7',
    )

    response = asyncio.run(list_occupied(date='2025-06-11', sources=[fake_source([interval])]))

    assert response.date == '2025-06-11'
    assert len(response.occupied) == 1
    payload = response.occupied[0].model_dump()
    assert payload['source'] == 'external-calendar'
    assert 'title' not in payload
    assert 'id' not in payload


def test_list_occupied_rejects_invalid_date(fake_source) -> None:
    with pytest.raises(HTTPException) as exception_info:
        asyncio.run(list_occupied(date='06/11/2025', sources=[fake_source()]))

    assert exception_info.value.status_code == 400


def test_list_available_slots_uses_requested_duration(db, policy, fake_source, future_wednesday) -> None:
    slots = asyncio.run(
        list_available_slots(
            date=future_wednesday,
            service=None,
            duration_minutes=60,
            db=db,
            policy=policy,
            sources=[fake_source()],
        )
    )

    assert len(slots) == 19
    assert slots[0].time == '08:00'
    assert slots[0].label == '8:00 AM'
    assert slots[-1].time == '17:00'


def test_list_available_slots_looks_up_service_duration(db, policy, fake_source, future_wednesday) -> None:
    db.add(Service(slug='ultimate-full-detail', title='Ultimate Full Detail', duration_minutes=180))
    db.commit()

    slots = asyncio.run(
        list_available_slots(
            date=future_wednesday,
            service='ULTIMATE FULL DETAIL',
            duration_minutes=None,
            db=db,
            policy=policy,
            sources=[fake_source()],
        )
    )

    assert slots[-1].time == '15:00'
    assert len(slots) == 15


def test_list_available_slots_skips_occupied_times(db, policy, fake_source, future_wednesday) -> None:
    booked = OccupiedInterval(
        start=zoned_to_utc(future_wednesday, '09:00', HALIFAX),
        end=zoned_to_utc(future_wednesday, '10:00', HALIFAX),
        source=IntervalSource.INTERNAL_BOOKING,
    )

    slots = asyncio.run(
        list_available_slots(
            date=future_wednesday,
            service=None,
            duration_minutes=60,
            db=db,
            policy=policy,
            sources=[fake_source([booked])],
        )
    )

    times = [slot.time for slot in slots]
    assert '08:00' not in times
    assert '10:00' not in times
    assert '10:30' in times


def test_list_month_availability_returns_every_day(db, policy, fake_source) -> None:
    days = asyncio.run(
        list_month_availability(
            year=2025,
            month=2,
            service=None,
            duration_minutes=60,
            db=db,
            policy=policy,
            sources=[fake_source()],
        )
    )

    assert [day.date for day in days][:2] == ['2025-02-01', '2025-02-02']
    assert len(days) == 28
    # The whole month is in the past.
    assert not any(day.has_availability for day in days)


def test_list_available_slots_sees_bookings_for_padded_date(db, session_factory, policy, future_wednesday) -> None:
    db.add(Booking(date=future_wednesday, time_value='09:00', service='Premium Exterior Wash'))
    db.commit()
    sources = [BookingStoreSource(session_factory=session_factory, time_zone=policy.time_zone)]

    def slots_for(date_value: str):
        return asyncio.run(
            list_available_slots(
                date=date_value,
                service=None,
                duration_minutes=60,
                db=db,
                policy=policy,
                sources=sources,
            )
        )

    clean = slots_for(future_wednesday)
    padded = slots_for(f' {future_wednesday} ')

    assert clean[0].time == '10:30'
    assert [slot.time for slot in padded] == [slot.time for slot in clean]


def test_list_occupied_reports_canonical_date_for_padded_input(db, session_factory, policy) -> None:
    db.add(Booking(date='2025-06-11', time_value='09:00', service='Premium Exterior Wash'))
    db.commit()
    sources = [BookingStoreSource(session_factory=session_factory, time_zone=policy.time_zone)]

    response = asyncio.run(list_occupied(date='2025-06-11 ', sources=sources))

    assert response.date == '2025-06-11'
    assert len(response.occupied) == 1
