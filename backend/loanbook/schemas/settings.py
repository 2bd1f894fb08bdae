"""Pydantic models for application configuration settings."""

from pydantic import BaseModel, Field, field_validator


class SettingsRead(BaseModel):
    site_name: str
    currency_symbol: str
    app_url: str
    verification_expiry_days: int
    whatsapp_country_code: str

    class Config:
        from_attributes = True


class SettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    site_name: str | None = None
    currency_symbol: str | None = None
    app_url: str | None = None
    verification_expiry_days: int | None = Field(default=None, ge=1)
    whatsapp_country_code: str | None = Field(default=None, pattern=r"^\d{1,3}$")

    @field_validator("*")
    @classmethod
    def reject_null(cls, value):
        # every settings column is NOT NULL
        if value is None:
            raise ValueError("must not be null")
        return value
