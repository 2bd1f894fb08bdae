"""Response models for dashboard figures and exported reports."""

from datetime import date
from decimal import Decimal
from pydantic import BaseModel
from typing import Optional


class DashboardStats(BaseModel):
    as_of: date
    total_clients: int
    total_lent: Decimal
    total_received: Decimal
    overdue_count: int


class OverdueClient(BaseModel):
    client_id: int
    full_name: Optional[str]
    phone: Optional[str]
    count: int
    total: Decimal


class OverdueReport(BaseModel):
    as_of: date
    installment_count: int
    total: Decimal
    clients: list[OverdueClient]
