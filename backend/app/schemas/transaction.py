"""Balance and transaction request/response models."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from app.models import TransactionType
from app.schemas.base import CamelModel


class BalanceRead(CamelModel):
    child_id: int
    amount_cents: int
    last_checkin: Optional[datetime] = None
    updated_at: datetime


class TransactionRead(CamelModel):
    id: int
    child_id: int
    type: TransactionType
    amount_cents: int
    description: Optional[str] = None
    created_at: datetime


class AmountRequest(CamelModel):
    child_id: int
    amount_cents: int = Field(gt=0, strict=True)


class BalanceChange(CamelModel):
    balance: BalanceRead
    transaction: TransactionRead


class LedgerResponse(CamelModel):
    balance_cents: int
    transactions: list[TransactionRead]


class TokenDepositCreate(CamelModel):
    child_id: int
    tokens_returned: int = Field(gt=0, strict=True)


class TokenDepositRead(CamelModel):
    id: int
    child_id: int
    volunteer_id: Optional[int] = None
    tokens_returned: int
    created_at: datetime
