from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from detailing.auth.dependencies import require_admin
from detailing.database import get_db
from detailing.models.service import Service
from detailing.routes.common import database_unavailable

router = APIRouter(tags=['services'])

SERVICES_CACHE_CONTROL = 's-maxage=300, stale-while-revalidate=300'


class ServiceInput(BaseModel):
    slug: str
    title: str
    summary: str | None = None
    base_price: float | None = None
    revive_price: float | None = None
    duration_minutes: int | None = None
    coming_soon: bool = False

    @field_validator('slug', 'title')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError('Duration must be a positive number of minutes.')
        return value


class UpdateServicesRequest(BaseModel):
    services: list[ServiceInput]


class ServiceResponse(BaseModel):
    id: int
    slug: str | None = None
    title: str
    summary: str | None = None
    base_price: float | None = None
    revive_price: float | None = None
    duration_minutes: int | None = None
    coming_soon: bool | None = False

    class Config:
        from_attributes = True


@router.get('', response_model=list[ServiceResponse])
def list_services(response: Response, db: Session = Depends(get_db)):
    try:
        services = db.query(Service).order_by(Service.title.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    response.headers['Cache-Control'] = SERVICES_CACHE_CONTROL
    return services


@router.put('', response_model=list[ServiceResponse])
def upsert_services(
    data: UpdateServicesRequest,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    if not data.services:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No services provided.',
        )

    try:
        existing = {
            service.slug: service
            for service in db.query(Service).filter(
                Service.slug.in_([item.slug for item in data.services]),
            ).all()
        }
        for item in data.services:
            service = existing.get(item.slug)
            if service is None:
                service = Service(slug=item.slug)
                db.add(service)
                existing[item.slug] = service
            for field_name, value in item.model_dump(exclude={'slug'}).items():
                setattr(service, field_name, value)

        db.commit()
        return db.query(Service).order_by(Service.title.asc()).all()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
