from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional


class VerificationRead(BaseModel):
    id: int
    loan_id: int
    token: str
    status: str
    photo_url: Optional[str]
    created_at: datetime
    verified_at: Optional[datetime]

    class Config:
        from_attributes = True


class VerificationLink(BaseModel):
    verification: VerificationRead
    link: str
    whatsapp_url: Optional[str] = None


class VerificationState(BaseModel):
    id: int
    status: str
    valid: bool


class PhotoSubmit(BaseModel):
    photo_url: str = Field(min_length=1)
