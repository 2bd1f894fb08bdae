from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional

from loanbook.schedule import LoanStatus, MAX_INSTALLMENTS, MIN_INSTALLMENTS
from .verification import VerificationRead

CPF_PATTERN = r"^\d{3}\.\d{3}\.\d{3}-\d{2}$|^\d{11}$"


class LoanCreate(BaseModel):
    """Borrower details plus loan terms, submitted together."""

    full_name: str = Field(min_length=3)
    address: str = Field(min_length=5)
    rg: str = Field(min_length=5)
    cpf: str = Field(pattern=CPF_PATTERN)
    phone: Optional[str] = Field(default=None, min_length=10, max_length=15)
    amount: Decimal = Field(gt=0, decimal_places=2)
    interest_rate: Decimal = Field(
        default=Decimal("0"), ge=0, le=100, decimal_places=2
    )
    installments_count: int = Field(
        default=12, ge=MIN_INSTALLMENTS, le=MAX_INSTALLMENTS
    )
    first_due_date: date


class InstallmentRead(BaseModel):
    id: int
    loan_id: int
    installment_number: int
    amount: Decimal
    due_date: date
    paid: bool
    paid_at: Optional[datetime]

    class Config:
        from_attributes = True


class InstallmentPayment(BaseModel):
    paid_at: Optional[datetime] = None


class LoanRead(BaseModel):
    id: int
    client_id: int
    original_amount: Decimal
    interest_rate: Decimal
    amount: Decimal
    installments_count: int
    first_due_date: date
    created_at: datetime

    class Config:
        from_attributes = True


class LoanDetail(LoanRead):
    """Loan with its schedule and the figures derived from it."""

    status: LoanStatus
    paid_count: int
    paid_amount: Decimal
    remaining_amount: Decimal
    overdue_count: int
    overdue_amount: Decimal
    installments: list[InstallmentRead]
    verification: Optional[VerificationRead] = None


class LoanDeleted(BaseModel):
    loan_id: int
    client_id: int
    client_removed: bool
