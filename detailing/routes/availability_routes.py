import asyncio
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from detailing.database import get_db
from detailing.routes.common import get_busy_sources, get_policy, resolve_duration_minutes
from detailing.scheduling.availability import (
    InvalidDateError,
    get_available_slots,
    get_month_availability,
    get_occupied_slots_for_date,
)
from detailing.scheduling.policy import SchedulingPolicy
from detailing.scheduling.sources import BusyIntervalSource
from detailing.scheduling.timezone import normalize_date

router = APIRouter(tags=['availability'])


class OccupiedIntervalResponse(BaseModel):
    start: datetime
    end: datetime
    source: str


class OccupiedResponse(BaseModel):
    date: str
    occupied: list[OccupiedIntervalResponse]


class CandidateSlotResponse(BaseModel):
    start: datetime
    end: datetime
    time: str
    label: str


class DayAvailabilityResponse(BaseModel):
    date: str
    has_availability: bool


def require_date(date: str) -> str:
    normalized = normalize_date(date)
    if normalized is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Missing or invalid date (YYYY-MM-DD).',
        )
    return normalized


@router.get('/occupied', response_model=OccupiedResponse)
async def list_occupied(
    date: str = Query(...),
    sources: list[BusyIntervalSource] = Depends(get_busy_sources),
):
    date = require_date(date)
    occupied = await get_occupied_slots_for_date(date, sources)

    # Titles and booking ids stay server-side.
    return OccupiedResponse(
        date=date,
        occupied=[
            OccupiedIntervalResponse(start=interval.start, end=interval.end, source=interval.source.value)
            for interval in occupied
        ],
    )


@router.get('/slots', response_model=list[CandidateSlotResponse])
async def list_available_slots(
    date: str = Query(...),
    service: str | None = Query(default=None),
    duration_minutes: int | None = Query(default=None, ge=1, le=24 * 60),
    db: Session = Depends(get_db),
    policy: SchedulingPolicy = Depends(get_policy),
    sources: list[BusyIntervalSource] = Depends(get_busy_sources),
):
    date = require_date(date)
    duration = await asyncio.to_thread(resolve_duration_minutes, db, service, duration_minutes, policy)

    try:
        slots = await get_available_slots(date, duration, datetime.now(timezone.utc), policy, sources)
    except InvalidDateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.detail) from exc

    return [
        CandidateSlotResponse(start=slot.start, end=slot.end, time=slot.time, label=slot.label)
        for slot in slots
    ]


@router.get('/month', response_model=list[DayAvailabilityResponse])
async def list_month_availability(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    service: str | None = Query(default=None),
    duration_minutes: int | None = Query(default=None, ge=1, le=24 * 60),
    db: Session = Depends(get_db),
    policy: SchedulingPolicy = Depends(get_policy),
    sources: list[BusyIntervalSource] = Depends(get_busy_sources),
):
    duration = await asyncio.to_thread(resolve_duration_minutes, db, service, duration_minutes, policy)
    days = await get_month_availability(year, month, duration, datetime.now(timezone.utc), policy, sources)

    return [DayAvailabilityResponse(date=day, has_availability=flag) for day, flag in days]
