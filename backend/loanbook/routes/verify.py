"""Public endpoints behind the link sent to borrowers.

These routes are reachable without a bearer token: the verification token
in the path is the only credential.
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from loanbook.database import get_session
from loanbook.schemas import VerificationState, PhotoSubmit
from loanbook.crud import (
    get_verification_by_token,
    complete_verification,
    get_settings,
)
from loanbook.exceptions import (
    NotFoundError,
    VerificationClosedError,
    VerificationExpiredError,
)
from loanbook.verification import STATUS_EXPIRED, verification_state

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/verify", tags=["verification"])

EXPIRED_DETAIL = {
    "code": "verification_expired",
    "message": "Verification link expired",
    "status": STATUS_EXPIRED,
}


@router.get("/{token}", response_model=VerificationState)
async def check_verification(token: str, db: AsyncSession = Depends(get_session)):
    """Report whether the token can still receive a photo."""
    verification = await get_verification_by_token(db, token)
    if not verification:
        raise HTTPException(status_code=404, detail="Verification not found")
    settings = await get_settings(db)
    state = verification_state(
        verification.status,
        verification.created_at,
        datetime.utcnow(),
        settings.verification_expiry_days,
    )
    if state["status"] == STATUS_EXPIRED:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=EXPIRED_DETAIL)
    return VerificationState(id=verification.id, **state)


@router.post("/{token}")
async def submit_photo(
    token: str, data: PhotoSubmit, db: AsyncSession = Depends(get_session)
):
    """Attach the borrower's photo; each token accepts exactly one upload."""
    settings = await get_settings(db)
    try:
        await complete_verification(
            db,
            token,
            data.photo_url,
            expiry_days=settings.verification_expiry_days,
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Verification not found")
    except VerificationClosedError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "verification_closed",
                "message": "Verification already completed",
            },
        )
    except VerificationExpiredError:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=EXPIRED_DETAIL)
    return {"success": True, "message": "Verification completed"}
