from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from detailing.auth.dependencies import require_admin
from detailing.database import get_db
from detailing.models.expense import Expense
from detailing.routes.common import database_unavailable
from detailing.scheduling.timezone import parse_date

router = APIRouter(tags=['expenses'])

EXPENSE_CATEGORIES = ('one-time', 'chemicals', 'other')
DEFAULT_TAX_RATE = 0.15


class CreateExpenseRequest(BaseModel):
    date: str
    amount: float
    category: str
    supplier: str = ''
    product_name: str = ''
    note: str = ''
    tax_included: bool = False
    tax_rate: float | None = None
    base_amount: float | None = None

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: str) -> str:
        normalized = value.strip()
        if parse_date(normalized) is None:
            raise ValueError('Invalid or missing date (YYYY-MM-DD).')
        return normalized

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, value: float) -> float:
        if value < 0:
            raise ValueError('Invalid amount.')
        return value

    @field_validator('category')
    @classmethod
    def validate_category(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in EXPENSE_CATEGORIES:
            raise ValueError('Invalid category.')
        return normalized

    @field_validator('supplier', 'product_name')
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode='after')
    def default_tax_rate(self) -> 'CreateExpenseRequest':
        if self.tax_rate is None:
            self.tax_rate = DEFAULT_TAX_RATE if self.tax_included else 0
        return self


class ExpenseResponse(BaseModel):
    id: int
    date: str
    amount: float
    category: str
    supplier: str | None = ''
    product_name: str | None = ''
    note: str | None = ''
    tax_included: bool | None = False
    tax_rate: float | None = 0
    base_amount: float | None = None
    created_at: str | None = None

    class Config:
        from_attributes = True


@router.get('', response_model=list[ExpenseResponse])
def list_expenses(
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    try:
        return db.query(Expense).order_by(Expense.date.desc(), Expense.id.desc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('', response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def create_expense(
    data: CreateExpenseRequest,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    try:
        expense = Expense(**data.model_dump(), created_at=datetime.now(timezone.utc).isoformat())
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/{expense_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    admin: dict = Depends(require_admin),
):
    try:
        expense = db.query(Expense).filter(Expense.id == expense_id).first()
        if not expense:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Expense not found.',
            )

        db.delete(expense)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
