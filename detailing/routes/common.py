from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from detailing.database import ensure_booking_schema
from detailing.integrations.google_calendar import GoogleCalendarClient, GoogleCalendarCredentials
from detailing.scheduling.policy import SchedulingPolicy
from detailing.scheduling.sources import BusyIntervalSource, default_sources, get_service_duration_minutes

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


def get_policy() -> SchedulingPolicy:
    return SchedulingPolicy.from_config()


def get_busy_sources() -> list[BusyIntervalSource]:
    return default_sources()


def get_calendar_client() -> GoogleCalendarClient:
    return GoogleCalendarClient(GoogleCalendarCredentials.from_config())


def resolve_duration_minutes(
    db: Session,
    service: str | None,
    duration_minutes: int | None,
    policy: SchedulingPolicy,
) -> int:
    if duration_minutes is not None:
        return duration_minutes
    try:
        return get_service_duration_minutes(db, service, policy.default_duration_minutes)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
