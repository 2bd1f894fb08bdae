"""Installment scheduling and payment-status rules.

Everything here is a pure function over plain values: no database access and
no clock reads.  Callers pass the current date explicitly, which keeps the
rules easy to test and lets reports be rendered "as of" any day.

Amounts are ``Decimal`` throughout.  Rounding to cents only happens when a
value is about to be stored or displayed (see :func:`round_money`).
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

from dateutil.relativedelta import relativedelta

CENT = Decimal("0.01")
MIN_INSTALLMENTS = 1
MAX_INSTALLMENTS = 48
MAX_INTEREST_RATE = Decimal("100")


class LoanStatus(str, Enum):
    ON_TIME = "on_time"
    OVERDUE = "overdue"
    PAID_OFF = "paid_off"


class ClientStatus(str, Enum):
    ON_TIME = "on_time"
    OVERDUE = "overdue"
    PAID_OFF = "paid_off"
    NO_LOANS = "no_loans"


class InvalidLoanTerms(ValueError):
    """Raised when loan terms fall outside the accepted ranges."""


@dataclass(frozen=True)
class ScheduledInstallment:
    """One entry of a freshly generated payment plan."""

    installment_number: int
    amount: Decimal
    due_date: date
    paid: bool = False
    paid_at: Optional[datetime] = None


@dataclass
class OverdueSummary:
    """Overdue installments of a single client."""

    client_id: Any
    count: int = 0
    total: Decimal = Decimal("0")
    full_name: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class LoanProgress:
    paid_count: int
    installments_count: int
    paid_amount: Decimal
    remaining_amount: Decimal
    overdue_count: int
    overdue_amount: Decimal


def round_money(value: Decimal) -> Decimal:
    """Quantize ``value`` to cents, rounding halves away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_total_amount(principal: Decimal, interest_rate: Decimal) -> Decimal:
    """Return the total payable: principal plus a flat percentage of interest.

    The result is not rounded so it can be split into installments without
    compounding rounding error.
    """
    principal = Decimal(principal)
    return principal * (1 + Decimal(interest_rate) / 100)


def validate_loan_terms(principal: Decimal, interest_rate: Decimal, count: int) -> None:
    """Fail fast on terms the scheduler is not meant to receive."""
    if Decimal(principal) <= 0:
        raise InvalidLoanTerms("Principal must be greater than zero")
    rate = Decimal(interest_rate)
    if rate < 0 or rate > MAX_INTEREST_RATE:
        raise InvalidLoanTerms("Interest rate must be between 0 and 100")
    if not MIN_INSTALLMENTS <= count <= MAX_INSTALLMENTS:
        raise InvalidLoanTerms(
            f"Installments must be between {MIN_INSTALLMENTS} and {MAX_INSTALLMENTS}"
        )


def add_months(start: date, months: int) -> date:
    """Advance ``start`` by whole calendar months.

    The day of month is kept when the target month has it and clamped to the
    month's last day otherwise (Jan 31 + 1 month is Feb 28/29).
    """
    return start + relativedelta(months=months)


def generate_installments(
    total: Decimal, count: int, first_due_date: date
) -> Iterator[ScheduledInstallment]:
    """Yield the ``count`` installments that split ``total``.

    Each installment is ``total / count`` rounded to cents.  The rounding
    remainder is not pushed onto any installment, so the sum of the plan may
    differ from ``total`` by at most half a cent per installment.  Due dates
    are always derived from ``first_due_date`` so a clamped month never
    shortens the following ones.
    """
    amount = round_money(Decimal(total) / count)
    for i in range(count):
        yield ScheduledInstallment(
            installment_number=i + 1,
            amount=amount,
            due_date=add_months(first_due_date, i),
        )


def _as_date(value: date | datetime) -> date:
    # datetime is a date subclass; compare calendar days only
    if isinstance(value, datetime):
        return value.date()
    return value


def is_overdue(installment: Any, today: date | datetime) -> bool:
    """An unpaid installment is overdue once its due date is before today."""
    if installment.paid:
        return False
    return _as_date(installment.due_date) < _as_date(today)


def loan_status(installments: Iterable[Any], today: date | datetime) -> LoanStatus:
    installments = list(installments)
    if all(i.paid for i in installments):
        return LoanStatus.PAID_OFF
    if any(is_overdue(i, today) for i in installments):
        return LoanStatus.OVERDUE
    return LoanStatus.ON_TIME


def client_status(loan_statuses: Iterable[LoanStatus]) -> ClientStatus:
    """Collapse a client's loan statuses; an overdue loan takes precedence."""
    statuses = [LoanStatus(s) for s in loan_statuses]
    if not statuses:
        return ClientStatus.NO_LOANS
    if LoanStatus.OVERDUE in statuses:
        return ClientStatus.OVERDUE
    if all(s == LoanStatus.PAID_OFF for s in statuses):
        return ClientStatus.PAID_OFF
    return ClientStatus.ON_TIME


def aggregate_overdue(
    installments: Iterable[Any], today: date | datetime
) -> dict[Any, OverdueSummary]:
    """Group overdue installments by their owning client.

    ``installments`` may be any rows exposing ``client_id``, ``amount``,
    ``due_date`` and ``paid``; ``full_name`` and ``phone`` are copied onto the
    summary when present.  Amounts are summed as stored.
    """
    groups: dict[Any, OverdueSummary] = {}
    for row in installments:
        if not is_overdue(row, today):
            continue
        summary = groups.get(row.client_id)
        if summary is None:
            summary = OverdueSummary(
                client_id=row.client_id,
                full_name=getattr(row, "full_name", None),
                phone=getattr(row, "phone", None),
            )
            groups[row.client_id] = summary
        summary.count += 1
        summary.total += Decimal(row.amount)
    return groups


def loan_progress(
    total: Decimal, installments: Iterable[Any], today: date | datetime
) -> LoanProgress:
    """Summarize how much of a loan has been paid and how much is late.

    Installments are rounded to cents independently, so a fully paid plan
    can exceed ``total`` slightly; the remaining amount never drops below zero.
    """
    installments = list(installments)
    paid = [i for i in installments if i.paid]
    overdue = [i for i in installments if is_overdue(i, today)]
    paid_amount = sum((Decimal(i.amount) for i in paid), Decimal("0"))
    return LoanProgress(
        paid_count=len(paid),
        installments_count=len(installments),
        paid_amount=paid_amount,
        remaining_amount=max(Decimal(total) - paid_amount, Decimal("0")),
        overdue_count=len(overdue),
        overdue_amount=sum((Decimal(i.amount) for i in overdue), Decimal("0")),
    )
