"""Endpoints for viewing and updating site-wide settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from loanbook.database import get_session
from loanbook.models import User
from loanbook.auth import require_role
from loanbook.schemas import SettingsRead, SettingsUpdate
from loanbook.crud import get_settings, save_settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/", response_model=SettingsRead)
async def read_settings(db: AsyncSession = Depends(get_session)):
    """Retrieve the current configuration values."""
    return await get_settings(db)


@router.put("/", response_model=SettingsRead)
async def update_settings(
    data: SettingsUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role("admin")),
):
    """Update settings; only admins may change configuration."""
    settings = await get_settings(db)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(settings, field, value)
    return await save_settings(db, settings)
