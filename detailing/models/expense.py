"""Expense model definitions."""

from sqlalchemy import Boolean, Column, Float, Integer, String
from detailing.database import Base


class Expense(Base):
    """Represents a business expense entered from the admin dashboard."""
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True)
    date = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    supplier = Column(String, default="")
    product_name = Column(String, default="")
    note = Column(String, default="")
    tax_included = Column(Boolean, default=False)
    tax_rate = Column(Float, default=0)
    base_amount = Column(Float)
    created_at = Column(String)
