"""Database models for the market token back office.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and represent families, their children, token balances, check-ins and the
append-only ledgers that record every balance change.  Comments are kept
concise to avoid distracting from the field definitions.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Column, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


class UserRole(str, Enum):
    parent = "parent"
    volunteer = "volunteer"
    vendor = "vendor"
    admin = "admin"


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"


class TransactionType(str, Enum):
    credit = "credit"  # check-in reward
    withdrawal = "withdrawal"
    deposit = "deposit"


class Credential(SQLModel, table=True):
    """Login record owned by the identity provider, not by the ledger."""

    subject_id: str = Field(primary_key=True)
    email: str = Field(unique=True, index=True)
    password_hash: str
    custom_claims: dict = Field(sa_column=Column(JSON), default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class User(SQLModel, table=True):
    """Adult user of the system (parent, volunteer, vendor or admin)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    auth_uid: str = Field(unique=True, index=True)
    name: str
    email: str = Field(unique=True, index=True)
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    role: UserRole = UserRole.parent
    account_created_at: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Child(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: int = Field(foreign_key="user.id", index=True)
    name: str
    gender: Gender
    date_of_birth: Optional[date] = None
    times_checked_in: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)

    parent: Optional[User] = Relationship()
    balance: Optional["Balance"] = Relationship(
        back_populates="child", sa_relationship_kwargs={"uselist": False}
    )
    qr_code: Optional["QrCode"] = Relationship(
        back_populates="child", sa_relationship_kwargs={"uselist": False}
    )


class Balance(SQLModel, table=True):
    """Running token balance for one child, in cents."""

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_balance_non_negative"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = Field(foreign_key="child.id", unique=True)
    amount_cents: int = 0
    last_checkin: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    child: Optional[Child] = Relationship(back_populates="balance")


class Checkin(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("child_id", "checkin_date", name="uq_checkin_child_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = Field(foreign_key="child.id", index=True)
    volunteer_id: Optional[int] = Field(default=None, foreign_key="user.id")
    checkin_time: datetime = Field(default_factory=datetime.utcnow)
    checkin_date: date


class Transaction(SQLModel, table=True):
    """Ledger entry; the sign of ``amount_cents`` is implied by ``type``."""

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_transaction_magnitude"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = Field(foreign_key="child.id", index=True)
    type: TransactionType
    amount_cents: int
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TokenDeposit(SQLModel, table=True):
    """Physical tokens handed back by a child."""

    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: int = Field(foreign_key="child.id", index=True)
    volunteer_id: Optional[int] = Field(default=None, foreign_key="user.id")
    tokens_returned: int
    created_at: datetime = Field(default_factory=datetime.utcnow)


class VendorTokenTurnin(SQLModel, table=True):
    """Tokens a vendor collected at market and turned in for payment."""

    id: Optional[int] = Field(default=None, primary_key=True)
    vendor_id: int = Field(foreign_key="user.id", index=True)
    tokens_submitted: int
    market_date: datetime
    verified_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AuditLog(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id")
    action: str
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)


class QrCode(SQLModel, table=True):
    """Pre-printed identifier that can be attached to at most one child."""

    id: str = Field(primary_key=True)
    printed: bool = False
    child_id: Optional[int] = Field(default=None, foreign_key="child.id", unique=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    child: Optional[Child] = Relationship(back_populates="qr_code")
