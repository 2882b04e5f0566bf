from datetime import date, datetime
from typing import Optional

from pydantic import Field

from app.models import Gender
from app.schemas.base import CamelModel
from app.schemas.transaction import BalanceRead, TransactionRead


class ChildCreate(CamelModel):
    name: str = Field(min_length=1)
    gender: Gender
    date_of_birth: Optional[date] = None
    parent_id: Optional[int] = None


class ChildRead(CamelModel):
    id: int
    parent_id: int
    name: str
    gender: Gender
    date_of_birth: Optional[date] = None
    times_checked_in: int
    created_at: datetime


class SiblingRead(CamelModel):
    id: int
    name: str


class ChildCreated(CamelModel):
    child: ChildRead
    balance: BalanceRead


class ChildSummary(ChildRead):
    balance_cents: int = 0
    last_checkin: Optional[datetime] = None
    qr_code: Optional[str] = None


class ChildDetail(CamelModel):
    child: ChildSummary
    siblings: list[SiblingRead]
    balance: Optional[BalanceRead] = None
    recent_transactions: list[TransactionRead]


class CheckinResult(CamelModel):
    child: ChildRead
    siblings: list[SiblingRead]
    balance: BalanceRead
