"""Database models used by Loanbook.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic).
Ownership is a strict tree: a user owns clients, a client owns loans and a
loan owns its installments and identity verifications.  Deleting a parent
removes its children through ORM cascades.
"""

from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint

CASCADE = {"cascade": "all, delete-orphan"}


class User(SQLModel, table=True):
    """Account holder who registers clients and their loans."""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = "user"  # 'user' or 'admin'
    created_at: datetime = Field(default_factory=datetime.utcnow)

    clients: List["Client"] = Relationship(
        back_populates="owner", sa_relationship_kwargs=CASCADE
    )


class Client(SQLModel, table=True):
    """Borrower registered by an account holder."""

    __table_args__ = (UniqueConstraint("cpf", "owner_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    full_name: str
    address: str
    rg: str
    cpf: str = Field(index=True)  # digits only
    phone: Optional[str] = None  # digits only
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
    )

    owner: User = Relationship(back_populates="clients")
    loans: List["Loan"] = Relationship(
        back_populates="client", sa_relationship_kwargs=CASCADE
    )


class Loan(SQLModel, table=True):
    """Loan with flat interest split into monthly installments.

    ``amount`` is the total payable (principal plus interest) fixed at
    creation; it is never recalculated afterwards.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    original_amount: Decimal = Field(max_digits=12, decimal_places=2)
    interest_rate: Decimal = Field(default=Decimal("0"), max_digits=5, decimal_places=2)
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    installments_count: int
    first_due_date: date
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
    )

    client: Client = Relationship(back_populates="loans")
    installments: List["Installment"] = Relationship(
        back_populates="loan",
        sa_relationship_kwargs={
            **CASCADE,
            "order_by": "Installment.installment_number",
        },
    )
    verifications: List["IdentityVerification"] = Relationship(
        back_populates="loan", sa_relationship_kwargs=CASCADE
    )


class Installment(SQLModel, table=True):
    """Scheduled partial payment of a loan."""

    __table_args__ = (UniqueConstraint("loan_id", "installment_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    loan_id: int = Field(foreign_key="loan.id", index=True)
    installment_number: int
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    due_date: date
    paid: bool = False
    paid_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
    )

    loan: Loan = Relationship(back_populates="installments")


class IdentityVerification(SQLModel, table=True):
    """Single-use token asking a borrower for a photo holding their ID."""

    id: Optional[int] = Field(default=None, primary_key=True)
    loan_id: int = Field(foreign_key="loan.id", index=True)
    token: str = Field(unique=True, index=True)
    status: str = "pending"  # pending, completed, expired
    photo_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    verified_at: Optional[datetime] = None

    loan: Loan = Relationship(back_populates="verifications")


class Settings(SQLModel, table=True):
    """Singleton table storing site-wide configuration values."""

    id: Optional[int] = Field(default=1, primary_key=True)
    site_name: str = "Loanbook"
    currency_symbol: str = "R$"
    app_url: str = "http://localhost:5173"
    verification_expiry_days: int = 7
    whatsapp_country_code: str = "55"
