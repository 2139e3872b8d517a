import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

# Availability reads bookings from worker threads.
connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    """Bring a legacy bookings table up to date with the columns availability relies on."""
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('time_value', 'ALTER TABLE bookings ADD COLUMN time_value VARCHAR'),
            ('time_iso', 'ALTER TABLE bookings ADD COLUMN time_iso VARCHAR'),
            ('time_zone', 'ALTER TABLE bookings ADD COLUMN time_zone VARCHAR'),
            ('source', "ALTER TABLE bookings ADD COLUMN source VARCHAR DEFAULT 'online'"),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_date ON bookings(date)')
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_bookings_date_time_value ON bookings(date, time_value) '
                    "WHERE status != 'cancelled' AND source = 'online'"
                )
            )

        _booking_schema_checked = True
