"""Dashboard figures, overdue alerts and loan report exports.

All figures are computed "as of" a calendar day, today by default.
"""

import csv
import io
from datetime import date
from decimal import Decimal
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from loanbook.database import get_session
from loanbook.models import User
from loanbook.auth import get_current_user
from loanbook.crud import (
    get_clients_with_loans,
    get_owner_totals,
    get_settings,
    get_unpaid_installment_rows,
)
from loanbook.schedule import aggregate_overdue, is_overdue, round_money
from loanbook.schemas import (
    ClientDetail,
    DashboardStats,
    OverdueClient,
    OverdueReport,
)
from .clients import client_detail

router = APIRouter(prefix="/reports", tags=["reports"])

CSV_COLUMNS = [
    "client",
    "cpf",
    "phone",
    "loan_id",
    "loan_date",
    "installment",
    "amount",
    "due_date",
    "status",
]


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(
    as_of: date | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    today = as_of or date.today()
    totals = await get_owner_totals(db, current_user.id)
    rows = await get_unpaid_installment_rows(db, current_user.id)
    return DashboardStats(
        as_of=today,
        overdue_count=sum(1 for row in rows if is_overdue(row, today)),
        **totals,
    )


@router.get("/overdue", response_model=OverdueReport)
async def overdue(
    as_of: date | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Overdue installments grouped by client, largest debt first."""
    today = as_of or date.today()
    rows = await get_unpaid_installment_rows(db, current_user.id)
    groups = sorted(
        aggregate_overdue(rows, today).values(),
        key=lambda g: (-g.total, g.full_name or ""),
    )
    return OverdueReport(
        as_of=today,
        installment_count=sum(g.count for g in groups),
        total=round_money(sum((g.total for g in groups), Decimal("0"))),
        clients=[
            OverdueClient(
                client_id=g.client_id,
                full_name=g.full_name,
                phone=g.phone,
                count=g.count,
                total=round_money(g.total),
            )
            for g in groups
        ],
    )


async def _report_clients(
    db: AsyncSession, owner_id: int, today: date
) -> list[ClientDetail]:
    settings = await get_settings(db)
    clients = await get_clients_with_loans(db, owner_id)
    details = [
        client_detail(c, today, settings.verification_expiry_days)
        for c in clients
        if c.loans
    ]
    return sorted(details, key=lambda c: c.full_name.lower())


@router.get("/loans", response_model=list[ClientDetail])
async def loan_report(
    as_of: date | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Every client with loans, alphabetically, with full schedules."""
    return await _report_clients(db, current_user.id, as_of or date.today())


@router.get("/loans.csv")
async def loan_report_csv(
    as_of: date | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Export one CSV row per installment."""
    today = as_of or date.today()
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for client in await _report_clients(db, current_user.id, today):
        for loan in client.loans:
            for inst in loan.installments:
                if inst.paid:
                    state = "paid"
                elif is_overdue(inst, today):
                    state = "overdue"
                else:
                    state = "pending"
                writer.writerow(
                    [
                        client.full_name,
                        client.cpf,
                        client.phone or "",
                        loan.id,
                        loan.created_at.date().isoformat(),
                        f"{inst.installment_number}/{loan.installments_count}",
                        f"{inst.amount:.2f}",
                        inst.due_date.isoformat(),
                        state,
                    ]
                )
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="loans-{today.isoformat()}.csv"'
        },
    )
