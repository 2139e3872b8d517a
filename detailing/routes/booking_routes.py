import asyncio
import logging
from datetime import datetime, timedelta, timezone

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from detailing.auth.dependencies import require_admin
from detailing.core import config
from detailing.core.rate_limit import SlidingWindowRateLimiter, create_rate_limiter
from detailing.database import get_db
from detailing.integrations.google_calendar import CalendarError, CalendarNotConfigured, GoogleCalendarClient
from detailing.models.booking import Booking
from detailing.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_busy_sources,
    get_calendar_client,
    get_policy,
    resolve_duration_minutes,
)
from detailing.scheduling.availability import (
    BookingRejected,
    SlotConflictError,
    ValidatedSlot,
    date_lock,
    validate_requested_slot,
)
from detailing.scheduling.policy import SchedulingPolicy
from detailing.scheduling.sources import BusyIntervalSource
from detailing.scheduling.timezone import format_in_zone, normalize_time, parse_date, zoned_to_utc

router = APIRouter(tags=['bookings'])

logger = logging.getLogger(__name__)

ALLOWED_STATUSES = ('pending', 'confirmed', 'completed', 'cancelled')
MAX_BOOKING_NOTES_LENGTH = 1000

booking_rate_limit = create_rate_limiter(
    SlidingWindowRateLimiter(config.BOOKING_RATE_LIMIT_REQUESTS, config.BOOKING_RATE_LIMIT_WINDOW_SECONDS),
    key_prefix='booking_submit',
    detail='Too many booking requests. Please try again soon.',
)


class CreateBookingRequest(BaseModel):
    name: str
    email: str
    phone: str | None = None
    service: str
    date: str
    time: str
    car_name: str | None = None
    car_type: str | None = None
    location: str | None = None
    notes: str | None = None
    amount: float | None = None

    @field_validator('name', 'service')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email is required.')
        return normalized

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: str) -> str:
        normalized = value.strip()
        if parse_date(normalized) is None:
            raise ValueError('Date must be YYYY-MM-DD.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BOOKING_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_BOOKING_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateBookingRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    service: str | None = None
    date: str | None = None
    time: str | None = None
    car_name: str | None = None
    car_type: str | None = None
    location: str | None = None
    notes: str | None = None
    amount: float | None = None
    status: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email is required.')
        return normalized

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if parse_date(normalized) is None:
            raise ValueError('Date must be YYYY-MM-DD.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is not None and len(value.strip()) > MAX_BOOKING_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_BOOKING_NOTES_LENGTH} characters or fewer.')
        return value.strip() if value is not None else None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str:
        normalized = (value or '').strip().lower()
        if normalized not in ALLOWED_STATUSES:
            raise ValueError(f'Status must be one of: {", ".join(ALLOWED_STATUSES)}')
        return normalized


class BookingResponse(BaseModel):
    id: int
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    service: str | None = None
    date: str
    time: str | None = None
    time_value: str | None = None
    time_iso: str | None = None
    time_zone: str | None = None
    car_name: str | None = None
    car_type: str | None = None
    location: str | None = None
    notes: str | None = None
    amount: float | None = None
    status: str | None = None
    source: str | None = None
    created_at: str | None = None

    class Config:
        from_attributes = True


def build_booking(data: CreateBookingRequest, slot: ValidatedSlot, time_zone: str, source: str) -> Booking:
    return Booking(
        name=data.name,
        email=data.email,
        phone=data.phone,
        service=data.service,
        date=slot.date,
        time=slot.label,
        time_value=slot.time_value,
        time_iso=slot.start.isoformat(),
        time_zone=time_zone,
        car_name=data.car_name,
        car_type=data.car_type,
        location=data.location,
        notes=data.notes,
        amount=data.amount,
        status='pending',
        source=source,
        created_at=datetime.now(timezone.utc).isoformat(),
    )


async def add_booking_to_calendar(
    calendar_client: GoogleCalendarClient | None,
    booking: Booking,
    slot: ValidatedSlot,
    time_zone: str,
) -> None:
    """Mirror a stored booking into the external calendar; the booking stands either way."""
    if calendar_client is None:
        return
    try:
        await calendar_client.insert_event(
            summary=f'{booking.service} - {booking.name}',
            description=f'Booking #{booking.id}\nPhone: {booking.phone or "N/A"}\nEmail: {booking.email}',
            start=slot.start,
            end=slot.end,
            time_zone=time_zone,
            location=booking.location,
        )
    except CalendarNotConfigured as exc:
        logger.warning('Booking %s not mirrored to calendar: %s', booking.id, exc)
    except (CalendarError, httpx.HTTPError):
        logger.exception('Failed to add booking %s to Google Calendar', booking.id)


def persist_booking(db: Session, booking: Booking) -> Booking:
    try:
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking
    except IntegrityError as exc:
        db.rollback()
        logger.info('Booking for %s %s lost a race to another submission', booking.date, booking.time_value)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SlotConflictError.detail,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: CreateBookingRequest,
    db: Session = Depends(get_db),
    policy: SchedulingPolicy = Depends(get_policy),
    sources: list[BusyIntervalSource] = Depends(get_busy_sources),
    calendar_client: GoogleCalendarClient | None = Depends(get_calendar_client),
    _rate_limit: None = Depends(booking_rate_limit),
):
    await asyncio.to_thread(ensure_database_ready)
    duration_minutes = await asyncio.to_thread(resolve_duration_minutes, db, data.service, None, policy)

    async with date_lock(data.date):
        try:
            slot = await validate_requested_slot(
                data.date,
                data.time,
                duration_minutes,
                now=datetime.now(timezone.utc),
                policy=policy,
                sources=sources,
            )
        except SlotConflictError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.detail) from exc
        except BookingRejected as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.detail) from exc

        booking = await asyncio.to_thread(
            persist_booking, db, build_booking(data, slot, policy.time_zone, source='online')
        )

    await add_booking_to_calendar(calendar_client, booking, slot, policy.time_zone)
    return booking


@router.post('/admin', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_admin_booking(
    data: CreateBookingRequest,
    db: Session = Depends(get_db),
    policy: SchedulingPolicy = Depends(get_policy),
    calendar_client: GoogleCalendarClient | None = Depends(get_calendar_client),
    admin: dict = Depends(require_admin),
):
    """Store a booking without the availability check; admins may double-book on purpose."""
    await asyncio.to_thread(ensure_database_ready)

    time_value = normalize_time(data.time)
    if time_value is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Please choose a valid time.',
        )

    duration_minutes = await asyncio.to_thread(resolve_duration_minutes, db, data.service, None, policy)
    start = zoned_to_utc(data.date, time_value, policy.time_zone)
    slot = ValidatedSlot(
        date=data.date,
        time_value=time_value,
        start=start,
        end=start + timedelta(minutes=duration_minutes),
        label=format_in_zone(start, policy.time_zone),
    )
    logger.info('Admin override booking on %s at %s (availability check bypassed)', data.date, time_value)

    booking = await asyncio.to_thread(persist_booking, db, build_booking(data, slot, policy.time_zone, source='admin'))
    await add_booking_to_calendar(calendar_client, booking, slot, policy.time_zone)
    return booking


@router.get('', response_model=list[BookingResponse])
def list_bookings(
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    ensure_database_ready()

    try:
        return db.query(Booking).order_by(Booking.date.desc(), Booking.time_value.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


def reschedule_fields(date_str: str, raw_time: str | None, time_zone: str) -> dict:
    """Derive every stored time column from a civil date and a requested time."""
    time_value = normalize_time(raw_time)
    if time_value is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Please choose a valid time.',
        )

    start = zoned_to_utc(date_str, time_value, time_zone)
    return {
        'date': date_str,
        'time': format_in_zone(start, time_zone),
        'time_value': time_value,
        'time_iso': start.isoformat(),
        'time_zone': time_zone,
    }


@router.patch('/{booking_id}', response_model=BookingResponse)
def update_booking(
    booking_id: int,
    data: UpdateBookingRequest,
    db: Session = Depends(get_db),
    policy: SchedulingPolicy = Depends(get_policy),
    admin: dict = Depends(require_admin),
):
    """Apply an admin edit; moving a booking skips the availability check like an admin booking."""
    updates = data.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No changes provided.',
        )

    ensure_database_ready()

    try:
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Booking not found.',
            )

        requested_date = updates.pop('date', None)
        requested_time = updates.pop('time', None)
        if requested_date or requested_time:
            updates.update(
                reschedule_fields(
                    requested_date or booking.date,
                    requested_time or booking.time_value or booking.time,
                    booking.time_zone or policy.time_zone,
                )
            )

        for field_name, value in updates.items():
            setattr(booking, field_name, value)

        db.commit()
        db.refresh(booking)
        return booking
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SlotConflictError.detail,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.patch('/{booking_id}/status', response_model=BookingResponse)
def update_booking_status(
    booking_id: int,
    status_value: str = Query(..., alias='status'),
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    normalized_status = status_value.strip().lower()
    if normalized_status not in ALLOWED_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Status must be one of: {", ".join(ALLOWED_STATUSES)}',
        )

    ensure_database_ready()

    try:
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Booking not found.',
            )

        booking.status = normalized_status
        db.commit()
        db.refresh(booking)
        return booking
    except IntegrityError as exc:
        # Re-activating a cancelled booking whose slot was taken since.
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SlotConflictError.detail,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/{booking_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    ensure_database_ready()

    try:
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Booking not found.',
            )

        db.delete(booking)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
