"""Service catalog model definitions."""

from sqlalchemy import Boolean, Column, Float, Integer, String
from detailing.database import Base


class Service(Base):
    """Represents a detailing package offered on the booking page."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    slug = Column(String, unique=True, index=True)
    title = Column(String, nullable=False)
    summary = Column(String)
    base_price = Column(Float)
    revive_price = Column(Float)
    duration_minutes = Column(Integer)
    coming_soon = Column(Boolean, default=False)
