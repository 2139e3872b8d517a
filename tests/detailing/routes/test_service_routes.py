import pytest
from fastapi import HTTPException, Response
from pydantic import ValidationError

from detailing.models.service import Service
from detailing.routes.service_routes import ServiceInput, UpdateServicesRequest, list_services, upsert_services


def test_service_input_rejects_non_positive_duration() -> None:
    with pytest.raises(ValidationError):
        ServiceInput(slug='quick-wash', title='Quick Wash', duration_minutes=0)


def test_list_services_sets_cache_header(db) -> None:
    db.add(Service(slug='premium-exterior-wash', title='Premium Exterior Wash', duration_minutes=60))
    db.commit()
    response = Response()

    services = list_services(response, db=db)

    assert [service.title for service in services] == ['Premium Exterior Wash']
    assert response.headers['Cache-Control'] == 's-maxage=300, stale-while-revalidate=300'


def test_upsert_services_updates_existing_and_adds_new(db) -> None:
    db.add(Service(slug='premium-exterior-wash', title='Premium Exterior Wash', duration_minutes=60))
    db.commit()

    services = upsert_services(
        UpdateServicesRequest(
            services=[
                ServiceInput(slug='premium-exterior-wash', title='Premium Exterior Wash', duration_minutes=75),
                ServiceInput(slug=' ceramic-coating ', title='Ceramic Coating', duration_minutes=240),
            ]
        ),
        db=db,
        admin={'role': 'admin'},
    )

    by_slug = {service.slug: service for service in services}
    assert by_slug['premium-exterior-wash'].duration_minutes == 75
    assert by_slug['ceramic-coating'].duration_minutes == 240
    assert db.query(Service).count() == 2


def test_upsert_services_requires_at_least_one_service(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        upsert_services(UpdateServicesRequest(services=[]), db=db, admin={'role': 'admin'})

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'No services provided.'
