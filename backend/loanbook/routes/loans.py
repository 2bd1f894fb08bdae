from datetime import date, datetime
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from loanbook.database import get_session
from loanbook.models import Loan, User
from loanbook.schemas import (
    LoanCreate,
    LoanRead,
    LoanDetail,
    LoanDeleted,
    InstallmentRead,
    InstallmentPayment,
    VerificationRead,
    VerificationLink,
)
from loanbook.auth import get_current_user
from loanbook.crud import (
    create_loan_with_installments,
    get_loan,
    delete_loan,
    get_installment,
    mark_installment_paid,
    create_verification,
    latest_verification,
    get_settings,
)
from loanbook.schedule import InvalidLoanTerms, loan_progress, loan_status
from loanbook.verification import (
    DEFAULT_EXPIRY_DAYS,
    build_verification_link,
    build_whatsapp_url,
    verification_state,
)

router = APIRouter(prefix="/loans", tags=["loans"])


def verification_read(
    verification, expiry_days: int = DEFAULT_EXPIRY_DAYS, now: datetime | None = None
) -> VerificationRead:
    """API view of a token; a stale pending token is reported as expired."""
    read = VerificationRead.model_validate(verification)
    state = verification_state(
        read.status, read.created_at, now or datetime.utcnow(), expiry_days
    )
    return read.model_copy(update={"status": state["status"]})


def loan_detail(
    loan: Loan, today: date, expiry_days: int = DEFAULT_EXPIRY_DAYS
) -> LoanDetail:
    """Build the API view of a loan with status and progress as of ``today``."""
    installments = sorted(loan.installments, key=lambda i: i.installment_number)
    progress = loan_progress(loan.amount, installments, today)
    verification = latest_verification(loan)
    return LoanDetail(
        **LoanRead.model_validate(loan).model_dump(),
        status=loan_status(installments, today),
        paid_count=progress.paid_count,
        paid_amount=progress.paid_amount,
        remaining_amount=progress.remaining_amount,
        overdue_count=progress.overdue_count,
        overdue_amount=progress.overdue_amount,
        installments=[InstallmentRead.model_validate(i) for i in installments],
        verification=(
            verification_read(verification, expiry_days) if verification else None
        ),
    )


async def _get_owned_loan(db: AsyncSession, loan_id: int, user: User) -> Loan:
    loan = await get_loan(db, loan_id, user.id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan


@router.post("/", response_model=LoanDetail)
async def register_loan(
    data: LoanCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Register a loan, reusing the client with the same CPF if one exists."""
    try:
        loan = await create_loan_with_installments(db, current_user.id, data)
    except InvalidLoanTerms as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "loan_invalid_terms", "message": str(exc)},
        )
    settings = await get_settings(db)
    return loan_detail(loan, date.today(), settings.verification_expiry_days)


@router.get("/{loan_id}", response_model=LoanDetail)
async def read_loan(
    loan_id: int,
    as_of: date | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    settings = await get_settings(db)
    loan = await _get_owned_loan(db, loan_id, current_user)
    return loan_detail(loan, as_of or date.today(), settings.verification_expiry_days)


@router.delete("/{loan_id}", response_model=LoanDeleted)
async def remove_loan(
    loan_id: int,
    remove_orphan_client: bool = True,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Delete a loan; the client goes too when this was its last loan."""
    loan = await _get_owned_loan(db, loan_id, current_user)
    client_id = loan.client_id
    client_removed = await delete_loan(db, loan, remove_orphan_client)
    return LoanDeleted(
        loan_id=loan_id, client_id=client_id, client_removed=client_removed
    )


@router.post(
    "/{loan_id}/installments/{installment_number}/pay",
    response_model=InstallmentRead,
)
async def pay_installment(
    loan_id: int,
    installment_number: int,
    data: InstallmentPayment | None = None,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    installment = await get_installment(
        db, loan_id, installment_number, current_user.id
    )
    if not installment:
        raise HTTPException(status_code=404, detail="Installment not found")
    paid_at = data.paid_at if data else None
    return await mark_installment_paid(db, installment, paid_at)


async def _verification_link(db: AsyncSession, loan: Loan, verification) -> VerificationLink:
    settings = await get_settings(db)
    link = build_verification_link(settings.app_url, verification.token)
    client = loan.client
    whatsapp_url = None
    if client.phone:
        whatsapp_url = build_whatsapp_url(
            client.phone, client.full_name, link, settings.whatsapp_country_code
        )
    return VerificationLink(
        verification=verification_read(
            verification, settings.verification_expiry_days
        ),
        link=link,
        whatsapp_url=whatsapp_url,
    )


@router.post("/{loan_id}/verification", response_model=VerificationLink)
async def send_verification(
    loan_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Issue a new verification token and the WhatsApp link that carries it."""
    loan = await _get_owned_loan(db, loan_id, current_user)
    verification = await create_verification(db, loan)
    return await _verification_link(db, loan, verification)


@router.get("/{loan_id}/verification", response_model=VerificationLink)
async def read_verification(
    loan_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Return the latest token of a loan so its link can be resent."""
    loan = await _get_owned_loan(db, loan_id, current_user)
    verification = latest_verification(loan)
    if not verification:
        raise HTTPException(status_code=404, detail="Verification not found")
    return await _verification_link(db, loan, verification)
