"""Convenience imports for all schema classes used by the API."""

from .user import UserCreate, UserResponse, UserLogin
from .settings import SettingsRead, SettingsUpdate
from .verification import (
    VerificationRead,
    VerificationLink,
    VerificationState,
    PhotoSubmit,
)
from .loan import (
    LoanCreate,
    LoanRead,
    LoanDetail,
    LoanDeleted,
    InstallmentRead,
    InstallmentPayment,
)
from .client import ClientRead, ClientDetail
from .report import DashboardStats, OverdueClient, OverdueReport

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "SettingsRead",
    "SettingsUpdate",
    "VerificationRead",
    "VerificationLink",
    "VerificationState",
    "PhotoSubmit",
    "LoanCreate",
    "LoanRead",
    "LoanDetail",
    "LoanDeleted",
    "InstallmentRead",
    "InstallmentPayment",
    "ClientRead",
    "ClientDetail",
    "DashboardStats",
    "OverdueClient",
    "OverdueReport",
]
