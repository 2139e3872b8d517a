import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from detailing.core import config
from detailing.database import Base, engine, ensure_booking_schema
from detailing.models import booking, expense, service  # noqa: F401
from detailing.routes import (
    auth_routes,
    availability_routes,
    booking_routes,
    calendar_routes,
    expense_routes,
    service_routes,
)

config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Detailing API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(booking_routes.router, prefix='/bookings')
app.include_router(service_routes.router, prefix='/services')
app.include_router(expense_routes.router, prefix='/expenses')
app.include_router(calendar_routes.router, prefix='/calendar')
