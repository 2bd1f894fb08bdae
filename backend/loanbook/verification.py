"""Helpers for the token-based identity verification flow.

A verification token is sent to the borrower over WhatsApp.  The link opens
a public page where the borrower uploads a single photo holding their ID,
which moves the token from ``pending`` to ``completed``.  Tokens that stay
pending for longer than the configured window are treated as expired.
"""

import re
import uuid
from datetime import datetime, timedelta
from urllib.parse import quote

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_EXPIRED = "expired"

DEFAULT_EXPIRY_DAYS = 7

WHATSAPP_MESSAGE = (
    "Hello {name}! To confirm your loan, open the link below and take a "
    "photo holding your ID document:\n\n{link}"
)


def generate_token() -> str:
    return uuid.uuid4().hex


def is_expired(
    created_at: datetime, now: datetime, expiry_days: int = DEFAULT_EXPIRY_DAYS
) -> bool:
    """Return ``True`` once strictly more than ``expiry_days`` have elapsed."""
    return now - created_at > timedelta(days=expiry_days)


def verification_state(
    status: str,
    created_at: datetime,
    now: datetime,
    expiry_days: int = DEFAULT_EXPIRY_DAYS,
) -> dict:
    """Public view of a token: its effective status and whether it accepts uploads."""
    if status == STATUS_PENDING and is_expired(created_at, now, expiry_days):
        status = STATUS_EXPIRED
    return {"status": status, "valid": status == STATUS_PENDING}


def build_verification_link(app_url: str, token: str) -> str:
    return f"{app_url.rstrip('/')}/verify/{token}"


def whatsapp_phone(phone: str, country_code: str = "55") -> str:
    digits = re.sub(r"\D", "", phone)
    # national numbers carry at most 11 digits (area code included)
    if len(digits) > 11 and digits.startswith(country_code):
        return digits
    return f"{country_code}{digits}"


def build_whatsapp_url(
    phone: str, client_name: str, link: str, country_code: str = "55"
) -> str:
    """Build a ``wa.me`` deep link with the verification message pre-filled."""
    message = WHATSAPP_MESSAGE.format(name=client_name, link=link)
    return f"https://wa.me/{whatsapp_phone(phone, country_code)}?text={quote(message, safe='')}"
