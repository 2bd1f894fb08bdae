"""Aggregate import for all API route modules."""

from . import (
    auth,
    clients,
    loans,
    verify,
    reports,
    settings,
)

__all__ = [
    "auth",
    "clients",
    "loans",
    "verify",
    "reports",
    "settings",
]
