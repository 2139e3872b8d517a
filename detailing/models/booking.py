"""Booking model definitions."""

from sqlalchemy import Column, Float, Index, Integer, String, text
from detailing.database import Base

ACTIVE_ONLINE_BOOKING = text("status != 'cancelled' AND source = 'online'")


class Booking(Base):
    """Represents a customer booking for a single detailing appointment."""
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_date", "date"),
        Index(
            "uq_bookings_date_time_value",
            "date",
            "time_value",
            unique=True,
            sqlite_where=ACTIVE_ONLINE_BOOKING,
            postgresql_where=ACTIVE_ONLINE_BOOKING,
        ),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String)
    email = Column(String)
    phone = Column(String)
    car_name = Column(String)
    car_type = Column(String)
    service = Column(String)
    date = Column(String, nullable=False)  # YYYY-MM-DD civil date
    time = Column(String)  # display form, e.g. "9:30 AM"
    time_value = Column(String)  # HH:MM
    time_iso = Column(String)  # UTC instant
    time_zone = Column(String)
    location = Column(String)
    notes = Column(String)
    amount = Column(Float)
    status = Column(String, default="pending")
    source = Column(String, default="online")
    created_at = Column(String)
