from datetime import datetime
from pydantic import BaseModel
from typing import Optional

from loanbook.schedule import ClientStatus
from .loan import LoanDetail


class ClientRead(BaseModel):
    id: int
    full_name: str
    address: str
    rg: str
    cpf: str
    phone: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ClientDetail(ClientRead):
    status: ClientStatus
    loans: list[LoanDetail]
