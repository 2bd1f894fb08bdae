# loanbook/routes/auth.py
"""Account holder endpoints: registration, login and token generation."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from loanbook.auth import (
    create_access_token,
    authenticate_user,
    get_current_user,
)
from loanbook.database import get_session
from loanbook.models import User
from loanbook.crud import create_user, get_user_by_email, count_users
from loanbook.schemas import UserCreate, UserResponse, UserLogin

logger = logging.getLogger(__name__)
router = APIRouter()

INVALID_CREDENTIALS = {
    "code": "auth_invalid_credentials",
    "message": "Invalid email or password",
}


@router.post("/token")
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
):
    """OAuth2 password flow used by interactive docs and external clients."""

    user = await authenticate_user(db, form_data.username, form_data.password)
    if not user:
        logger.warning("Failed OAuth login for %s", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS
        )
    logger.info("User %s logged in via OAuth form", user.email)
    access_token = create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/login")
async def login(user_in: UserLogin, db: AsyncSession = Depends(get_session)):
    """JSON-based login used by the frontend."""

    user = await authenticate_user(db, user_in.email, user_in.password)
    if not user:
        logger.warning("Failed login for %s", user_in.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS
        )
    logger.info("User %s logged in", user.email)
    access_token = create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/register", response_model=UserResponse)
async def register(user_in: UserCreate, db: AsyncSession = Depends(get_session)):
    """Register an account holder; the very first one becomes admin."""

    is_first_user = await count_users(db) == 0
    if await get_user_by_email(db, user_in.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "auth_email_registered",
                "message": "Email is already registered.",
            },
        )

    new_user = await create_user(
        db,
        User(
            name=user_in.name,
            email=user_in.email,
            password_hash=user_in.password,
            role="admin" if is_first_user else "user",
        ),
    )
    logger.info(
        "User %s registered%s",
        new_user.email,
        " as initial admin" if is_first_user else "",
    )
    return new_user


@router.get("/users/me", response_model=UserResponse)
async def read_me(current_user: User = Depends(get_current_user)):
    return current_user
