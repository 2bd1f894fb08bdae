"""Asynchronous CRUD helpers for the application's data models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Centralizing the logic keeps route
handlers light and makes behavior easier to test.  Lookups that take an
``owner_id`` only ever return rows belonging to that account holder.
"""

import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from loanbook.auth import get_password_hash
from loanbook.exceptions import (
    NotFoundError,
    VerificationClosedError,
    VerificationExpiredError,
)
from loanbook.models import (
    User,
    Client,
    Loan,
    Installment,
    IdentityVerification,
    Settings,
)
from loanbook.schedule import (
    calculate_total_amount,
    generate_installments,
    round_money,
    validate_loan_terms,
)
from loanbook.schemas import LoanCreate
from loanbook.verification import (
    DEFAULT_EXPIRY_DAYS,
    STATUS_COMPLETED,
    STATUS_EXPIRED,
    STATUS_PENDING,
    generate_token,
    is_expired,
)

logger = logging.getLogger(__name__)


def only_digits(value: str | None) -> str | None:
    if value is None:
        return None
    return re.sub(r"\D", "", value)


# --- Settings & users ---------------------------------------------------


async def get_settings(db: AsyncSession) -> Settings:
    """Fetch the singleton settings record, creating it if necessary."""
    result = await db.execute(select(Settings).where(Settings.id == 1))
    settings = result.scalar_one_or_none()
    if not settings:
        settings = Settings()
        db.add(settings)
        await db.commit()
        await db.refresh(settings)
    return settings


async def save_settings(db: AsyncSession, settings: Settings) -> Settings:
    """Persist settings changes and return the refreshed object."""

    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


async def create_user(db: AsyncSession, user: User) -> User:
    """Create a new user; ``password_hash`` arrives as the plain password."""

    user.password_hash = get_password_hash(user.password_hash)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def count_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(User))
    return result.scalar()


# --- Clients ------------------------------------------------------------


def _client_loader():
    return (
        selectinload(Client.loans).selectinload(Loan.installments),
        selectinload(Client.loans).selectinload(Loan.verifications),
    )


async def find_or_create_client(
    db: AsyncSession, owner_id: int, data: LoanCreate
) -> Client:
    """Return the owner's client with this CPF, staging a new one if absent.

    An existing client is reused as-is; the submitted name and address do
    not overwrite it.  New clients are flushed but not committed so the
    caller can keep them in the same unit of work as the loan.
    """
    cpf = only_digits(data.cpf)
    result = await db.execute(
        select(Client).where(Client.owner_id == owner_id, Client.cpf == cpf)
    )
    client = result.scalar_one_or_none()
    if client:
        return client
    client = Client(
        owner_id=owner_id,
        full_name=data.full_name.strip(),
        address=data.address.strip(),
        rg=data.rg.strip(),
        cpf=cpf,
        phone=only_digits(data.phone) or None,
    )
    db.add(client)
    await db.flush()  # ensure client.id is populated
    logger.info("Registered client %s for owner %s", client.id, owner_id)
    return client


async def get_clients_with_loans(db: AsyncSession, owner_id: int) -> list[Client]:
    """Return the owner's clients, newest first, with loans and schedules."""

    result = await db.execute(
        select(Client)
        .where(Client.owner_id == owner_id)
        .options(*_client_loader())
        .order_by(Client.created_at.desc(), Client.id.desc())
    )
    return result.scalars().all()


async def get_client(db: AsyncSession, client_id: int, owner_id: int) -> Client | None:
    result = await db.execute(
        select(Client)
        .where(Client.id == client_id, Client.owner_id == owner_id)
        .options(*_client_loader())
    )
    return result.scalar_one_or_none()


async def delete_client(db: AsyncSession, client: Client) -> None:
    """Remove a client together with all of its loans and installments."""

    await db.delete(client)
    await db.commit()
    logger.info("Deleted client %s", client.id)


# --- Loans --------------------------------------------------------------


async def create_loan_with_installments(
    db: AsyncSession, owner_id: int, data: LoanCreate
) -> Loan:
    """Register a loan and its full payment schedule in one transaction.

    The client is looked up by CPF (or created), the total payable is
    derived from the principal and interest rate, and every installment is
    staged before the single commit, so either the whole loan exists or
    none of it does.
    """
    validate_loan_terms(data.amount, data.interest_rate, data.installments_count)
    client = await find_or_create_client(db, owner_id, data)

    # the total is derived from the stored (cent-precision) terms
    principal = round_money(data.amount)
    rate = round_money(data.interest_rate)
    total = calculate_total_amount(principal, rate)
    loan = Loan(
        client_id=client.id,
        original_amount=principal,
        interest_rate=rate,
        amount=round_money(total),
        installments_count=data.installments_count,
        first_due_date=data.first_due_date,
    )
    db.add(loan)
    await db.flush()

    for scheduled in generate_installments(
        total, data.installments_count, data.first_due_date
    ):
        db.add(
            Installment(
                loan_id=loan.id,
                installment_number=scheduled.installment_number,
                amount=scheduled.amount,
                due_date=scheduled.due_date,
                paid=scheduled.paid,
                paid_at=scheduled.paid_at,
            )
        )
    await db.commit()
    logger.info(
        "Created loan %s for client %s: %s in %sx",
        loan.id,
        client.id,
        loan.amount,
        loan.installments_count,
    )
    return await get_loan(db, loan.id, owner_id)


async def get_loan(db: AsyncSession, loan_id: int, owner_id: int) -> Loan | None:
    result = await db.execute(
        select(Loan)
        .join(Client)
        .where(Loan.id == loan_id, Client.owner_id == owner_id)
        .options(
            selectinload(Loan.installments),
            selectinload(Loan.verifications),
            selectinload(Loan.client),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def count_client_loans(db: AsyncSession, client_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Loan).where(Loan.client_id == client_id)
    )
    return result.scalar()


async def delete_loan(
    db: AsyncSession, loan: Loan, remove_orphan_client: bool = True
) -> bool:
    """Delete a loan with its installments and verifications.

    When ``remove_orphan_client`` is set and the loan was the client's last
    one, the client is deleted as well.  Returns whether that happened.
    """
    client_id = loan.client_id
    await db.delete(loan)
    await db.flush()

    client_removed = False
    if remove_orphan_client and await count_client_loans(db, client_id) == 0:
        result = await db.execute(
            select(Client)
            .where(Client.id == client_id)
            .options(selectinload(Client.loans))
            .execution_options(populate_existing=True)
        )
        client = result.scalar_one_or_none()
        if client:
            await db.delete(client)
            client_removed = True
    await db.commit()
    logger.info(
        "Deleted loan %s%s",
        loan.id,
        f" and client {client_id}" if client_removed else "",
    )
    return client_removed


# --- Installments -------------------------------------------------------


async def get_installment(
    db: AsyncSession, loan_id: int, installment_number: int, owner_id: int
) -> Installment | None:
    result = await db.execute(
        select(Installment)
        .join(Loan)
        .join(Client)
        .where(
            Installment.loan_id == loan_id,
            Installment.installment_number == installment_number,
            Client.owner_id == owner_id,
        )
    )
    return result.scalar_one_or_none()


async def mark_installment_paid(
    db: AsyncSession, installment: Installment, paid_at: datetime | None = None
) -> Installment:
    """Flag an installment as paid and stamp the payment time.

    Paying an installment that is already paid leaves it untouched, so the
    original ``paid_at`` is preserved.
    """
    if installment.paid:
        return installment
    installment.paid = True
    installment.paid_at = paid_at or datetime.utcnow()
    db.add(installment)
    await db.commit()
    await db.refresh(installment)
    logger.info(
        "Installment %s of loan %s paid",
        installment.installment_number,
        installment.loan_id,
    )
    return installment


async def get_unpaid_installment_rows(db: AsyncSession, owner_id: int) -> list:
    """Every unpaid installment of the owner joined with its client.

    Rows expose ``client_id``, ``full_name``, ``phone``, ``loan_id``,
    ``installment_number``, ``amount``, ``due_date`` and ``paid``.
    """
    result = await db.execute(
        select(
            Client.id.label("client_id"),
            Client.full_name,
            Client.phone,
            Loan.id.label("loan_id"),
            Installment.installment_number,
            Installment.amount,
            Installment.due_date,
            Installment.paid,
        )
        .join(Loan, Installment.loan_id == Loan.id)
        .join(Client, Loan.client_id == Client.id)
        .where(
            Client.owner_id == owner_id,
            Installment.paid == False,  # noqa: E712
        )
        .order_by(Installment.due_date, Loan.id, Installment.installment_number)
    )
    return result.all()


async def get_owner_totals(db: AsyncSession, owner_id: int) -> dict:
    """Client count, total lent and total received for an owner."""

    clients = await db.execute(
        select(func.count()).select_from(Client).where(Client.owner_id == owner_id)
    )
    lent = await db.execute(
        select(func.sum(Loan.amount)).join(Client).where(Client.owner_id == owner_id)
    )
    received = await db.execute(
        select(func.sum(Installment.amount))
        .join(Loan, Installment.loan_id == Loan.id)
        .join(Client, Loan.client_id == Client.id)
        .where(Client.owner_id == owner_id, Installment.paid == True)  # noqa: E712
    )
    return {
        "total_clients": clients.scalar() or 0,
        "total_lent": round_money(lent.scalar() or Decimal("0")),
        "total_received": round_money(received.scalar() or Decimal("0")),
    }


# --- Identity verification ----------------------------------------------


async def create_verification(db: AsyncSession, loan: Loan) -> IdentityVerification:
    """Issue a fresh pending token for ``loan``."""

    verification = IdentityVerification(
        loan_id=loan.id, token=generate_token(), status=STATUS_PENDING
    )
    db.add(verification)
    await db.commit()
    await db.refresh(verification)
    logger.info("Issued verification %s for loan %s", verification.id, loan.id)
    return verification


def latest_verification(loan: Loan) -> IdentityVerification | None:
    if not loan.verifications:
        return None
    return max(loan.verifications, key=lambda v: (v.created_at, v.id))


async def get_verification_by_token(
    db: AsyncSession, token: str
) -> IdentityVerification | None:
    result = await db.execute(
        select(IdentityVerification).where(IdentityVerification.token == token)
    )
    return result.scalar_one_or_none()


async def complete_verification(
    db: AsyncSession,
    token: str,
    photo_url: str,
    now: datetime | None = None,
    expiry_days: int = DEFAULT_EXPIRY_DAYS,
) -> IdentityVerification:
    """Attach the borrower's photo and close the token.

    Only a pending, unexpired token accepts a photo, and only once: the
    update is conditional on the row still being pending.
    """
    now = now or datetime.utcnow()
    verification = await get_verification_by_token(db, token)
    if verification is None:
        raise NotFoundError("Verification not found")
    if verification.status != STATUS_PENDING:
        raise VerificationClosedError("Verification already completed")
    if is_expired(verification.created_at, now, expiry_days):
        raise VerificationExpiredError("Verification link expired")

    result = await db.execute(
        update(IdentityVerification)
        .where(
            IdentityVerification.token == token,
            IdentityVerification.status == STATUS_PENDING,
        )
        .values(photo_url=photo_url, status=STATUS_COMPLETED, verified_at=now)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise VerificationClosedError("Verification already completed")
    await db.commit()
    await db.refresh(verification)
    logger.info("Verification %s completed", verification.id)
    return verification


async def expire_stale_verifications(
    db: AsyncSession,
    now: datetime | None = None,
    expiry_days: int = DEFAULT_EXPIRY_DAYS,
) -> int:
    """Mark pending tokens older than the expiry window as expired."""

    cutoff = (now or datetime.utcnow()) - timedelta(days=expiry_days)
    result = await db.execute(
        update(IdentityVerification)
        .where(
            IdentityVerification.status == STATUS_PENDING,
            IdentityVerification.created_at < cutoff,
        )
        .values(status=STATUS_EXPIRED)
    )
    await db.commit()
    if result.rowcount:
        logger.info("Expired %s stale verification(s)", result.rowcount)
    return result.rowcount

