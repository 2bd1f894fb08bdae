"""Routes for browsing and removing the caller's clients."""

import re
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from loanbook.database import get_session
from loanbook.models import Client, User
from loanbook.schemas import ClientRead, ClientDetail
from loanbook.auth import get_current_user
from loanbook.crud import (
    get_clients_with_loans,
    get_client,
    delete_client,
    get_settings,
)
from loanbook.schedule import ClientStatus, client_status
from loanbook.verification import DEFAULT_EXPIRY_DAYS
from .loans import loan_detail

router = APIRouter(prefix="/clients", tags=["clients"])


def client_detail(
    client: Client, today: date, expiry_days: int = DEFAULT_EXPIRY_DAYS
) -> ClientDetail:
    loans = sorted(client.loans, key=lambda l: (l.created_at, l.id), reverse=True)
    details = [loan_detail(loan, today, expiry_days) for loan in loans]
    return ClientDetail(
        **ClientRead.model_validate(client).model_dump(),
        status=client_status(d.status for d in details),
        loans=details,
    )


def matches_search(client: Client, search: str | None) -> bool:
    """Match on a case-insensitive name fragment or on CPF digits."""
    if not search or not search.strip():
        return True
    term = search.strip().lower()
    if term in client.full_name.lower():
        return True
    digits = re.sub(r"\D", "", search)
    return bool(digits) and digits in client.cpf


@router.get("/", response_model=list[ClientDetail])
async def list_clients(
    status_filter: ClientStatus | None = Query(default=None, alias="status"),
    search: str | None = None,
    as_of: date | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """List clients newest first, optionally filtered by status or search text."""
    today = as_of or date.today()
    settings = await get_settings(db)
    clients = await get_clients_with_loans(db, current_user.id)
    result = []
    for client in clients:
        if not matches_search(client, search):
            continue
        detail = client_detail(client, today, settings.verification_expiry_days)
        if status_filter and detail.status != status_filter:
            continue
        result.append(detail)
    return result


@router.get("/{client_id}", response_model=ClientDetail)
async def read_client(
    client_id: int,
    as_of: date | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    settings = await get_settings(db)
    client = await get_client(db, client_id, current_user.id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client_detail(
        client, as_of or date.today(), settings.verification_expiry_days
    )


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_client(
    client_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Delete a client with every loan and installment it owns."""
    client = await get_client(db, client_id, current_user.id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    await delete_client(db, client)
