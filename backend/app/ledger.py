"""Balance, check-in and token ledger operations.

Every public coroutine here is one atomic unit: all of its writes are
committed together or the session is rolled back.  Balance arithmetic is
done in SQL (``amount_cents = amount_cents + n``) so concurrent operations
on the same child cannot lose updates, and every change to a balance is
paired with exactly one ``Transaction`` row and one ``AuditLog`` row.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.acl import ChildCreation, child_creation_capability
from app.auth import Caller
from app.config import CHECKIN_COOLDOWN_HOURS, CHECKIN_CREDIT_CENTS
from app.crud import get_siblings, record_audit
from app.database import atomic, insert_ignoring_conflicts
from app.errors import (
    Conflict,
    Forbidden,
    InsufficientFunds,
    NotFound,
    TooSoon,
    ValidationError,
)
from app.models import (
    Balance,
    Checkin,
    Child,
    Gender,
    TokenDeposit,
    Transaction,
    TransactionType,
    User,
    UserRole,
    VendorTokenTurnin,
)

logger = logging.getLogger(__name__)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_positive_cents(amount_cents) -> int:
    if not _is_int(amount_cents) or amount_cents <= 0:
        raise ValidationError("amountCents must be a positive integer")
    return amount_cents


async def ensure_balance(
    db: AsyncSession, child_id: int, now: datetime | None = None
) -> Balance:
    """Return the child's balance row, creating a zero balance if absent.

    Uses ``INSERT ... ON CONFLICT DO NOTHING`` on the unique ``child_id`` so
    two racing callers converge on a single row.  Does not commit.
    """

    now = now or datetime.utcnow()
    table = Balance.__table__
    await db.execute(
        insert_ignoring_conflicts(db, table)
        .values(child_id=child_id, amount_cents=0, last_checkin=None, updated_at=now)
        .on_conflict_do_nothing(index_elements=["child_id"])
    )
    result = await db.execute(
        select(Balance)
        .where(Balance.child_id == child_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _load_child(db: AsyncSession, child_id: int) -> Child:
    result = await db.execute(select(Child).where(Child.id == child_id).with_for_update())
    child = result.scalar_one_or_none()
    if child is None:
        raise NotFound("Child not found")
    return child


async def create_child(
    db: AsyncSession,
    caller: Caller,
    name: str | None,
    gender: Gender | str | None,
    date_of_birth: date | None = None,
    parent_id: int | None = None,
) -> tuple[Child, Balance]:
    """Create a child and its zero balance.

    Parents always create children for themselves; any ``parent_id`` they
    send is ignored.  Staff must name the parent.
    """

    if not name or not name.strip():
        raise ValidationError("name is required")
    if not gender:
        raise ValidationError("gender is required")
    try:
        gender = Gender(gender)
    except ValueError:
        raise ValidationError("gender must be one of male, female, other")

    capability = child_creation_capability(caller.role)
    if capability is None:
        raise Forbidden("Insufficient permissions")
    if capability is ChildCreation.SELF:
        if caller.id is None:
            raise ValidationError("Complete registration before adding children")
        parent_id = caller.id
    else:
        if parent_id is None:
            raise ValidationError("parentId is required")
        parent = await db.get(User, parent_id)
        if parent is None:
            raise NotFound("Parent not found")

    now = datetime.utcnow()
    async with atomic(db):
        child = Child(
            parent_id=parent_id,
            name=name.strip(),
            gender=gender,
            date_of_birth=date_of_birth,
            created_at=now,
        )
        db.add(child)
        await db.flush()
        balance = Balance(child_id=child.id, amount_cents=0, updated_at=now)
        db.add(balance)
        record_audit(
            db,
            caller.id,
            "create_child",
            "Child",
            child.id,
            {"parentId": parent_id, "name": child.name},
        )
    await db.refresh(child)
    await db.refresh(balance)
    logger.info("Child %s created for parent %s by user %s", child.id, parent_id, caller.id)
    return child, balance


def is_duplicate_checkin(exc: IntegrityError) -> bool:
    """True when the error is the one-check-in-per-day unique key."""

    message = str(exc.orig)
    return "uq_checkin_child_day" in message or (
        "checkin.child_id" in message and "checkin.checkin_date" in message
    )


async def check_in(
    db: AsyncSession, caller: Caller, child_id: int, now: datetime | None = None
) -> tuple[Child, list[dict], Balance]:
    """Credit a child for attending, at most once per cooldown window."""

    now = now or datetime.utcnow()
    try:
        async with atomic(db):
            child = await _load_child(db, child_id)
            result = await db.execute(
                select(Checkin)
                .where(Checkin.child_id == child_id)
                .order_by(Checkin.checkin_time.desc())
                .limit(1)
            )
            last = result.scalar_one_or_none()
            if last is not None:
                elapsed_hours = (now - last.checkin_time).total_seconds() / 3600
                if elapsed_hours < CHECKIN_COOLDOWN_HOURS:
                    remaining = round(CHECKIN_COOLDOWN_HOURS - elapsed_hours, 2)
                    logger.info(
                        "Check-in for child %s refused, %s hours remaining",
                        child_id,
                        remaining,
                    )
                    raise TooSoon(remaining)

            await ensure_balance(db, child_id, now)
            db.add(
                Checkin(
                    child_id=child_id,
                    volunteer_id=caller.id,
                    checkin_time=now,
                    checkin_date=now.date(),
                )
            )
            await db.execute(
                update(Balance)
                .where(Balance.child_id == child_id)
                .values(
                    amount_cents=Balance.amount_cents + CHECKIN_CREDIT_CENTS,
                    last_checkin=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                update(Child)
                .where(Child.id == child_id)
                .values(times_checked_in=Child.times_checked_in + 1)
                .execution_options(synchronize_session=False)
            )
            db.add(
                Transaction(
                    child_id=child_id,
                    type=TransactionType.credit,
                    amount_cents=CHECKIN_CREDIT_CENTS,
                    description=f"Check-in credit recorded by {caller.email}",
                    created_at=now,
                )
            )
            record_audit(
                db,
                caller.id,
                "checkin",
                "Child",
                child_id,
                {"creditCents": CHECKIN_CREDIT_CENTS},
            )
    except IntegrityError as exc:
        if not is_duplicate_checkin(exc):
            logger.error("Check-in for child %s failed: %s", child_id, exc.orig)
            raise
        raise Conflict("Child has already been checked in today")

    await db.refresh(child)
    balance = await _get_balance(db, child_id)
    siblings = await get_siblings(db, child)
    logger.info(
        "Child %s checked in by user %s, balance now %s",
        child_id,
        caller.id,
        balance.amount_cents,
    )
    return child, siblings, balance


async def _get_balance(db: AsyncSession, child_id: int) -> Balance | None:
    result = await db.execute(
        select(Balance)
        .where(Balance.child_id == child_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def withdraw(
    db: AsyncSession, caller: Caller, child_id: int, amount_cents: int
) -> tuple[Balance, Transaction]:
    """Remove ``amount_cents`` from a balance; never partially."""

    amount_cents = _require_positive_cents(amount_cents)
    now = datetime.utcnow()
    async with atomic(db):
        result = await db.execute(
            select(Balance)
            .where(Balance.child_id == child_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFound("Balance not found")
        if balance.amount_cents < amount_cents:
            logger.info(
                "Withdrawal of %s from child %s refused, balance %s",
                amount_cents,
                child_id,
                balance.amount_cents,
            )
            raise InsufficientFunds("Insufficient funds")
        # The guard in WHERE keeps the balance non-negative even if another
        # writer got in between the read above and this update.
        updated = await db.execute(
            update(Balance)
            .where(Balance.child_id == child_id, Balance.amount_cents >= amount_cents)
            .values(amount_cents=Balance.amount_cents - amount_cents, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount != 1:
            raise InsufficientFunds("Insufficient funds")
        tx = Transaction(
            child_id=child_id,
            type=TransactionType.withdrawal,
            amount_cents=amount_cents,
            description=f"Withdrawal by {caller.email}",
            created_at=now,
        )
        db.add(tx)
        record_audit(
            db, caller.id, "withdraw", "Child", child_id, {"amountCents": amount_cents}
        )
    await db.refresh(tx)
    balance = await _get_balance(db, child_id)
    logger.info(
        "Withdrew %s from child %s by user %s", amount_cents, child_id, caller.id
    )
    return balance, tx


async def deposit(
    db: AsyncSession, caller: Caller, child_id: int, amount_cents: int
) -> tuple[Balance, Transaction]:
    """Add ``amount_cents`` to a balance, creating the balance if needed."""

    amount_cents = _require_positive_cents(amount_cents)
    now = datetime.utcnow()
    async with atomic(db):
        await _load_child(db, child_id)
        await ensure_balance(db, child_id, now)
        await db.execute(
            update(Balance)
            .where(Balance.child_id == child_id)
            .values(amount_cents=Balance.amount_cents + amount_cents, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        tx = Transaction(
            child_id=child_id,
            type=TransactionType.deposit,
            amount_cents=amount_cents,
            description=f"Deposit by {caller.email}",
            created_at=now,
        )
        db.add(tx)
        record_audit(
            db, caller.id, "deposit", "Child", child_id, {"amountCents": amount_cents}
        )
    await db.refresh(tx)
    balance = await _get_balance(db, child_id)
    logger.info("Deposited %s to child %s by user %s", amount_cents, child_id, caller.id)
    return balance, tx


async def record_token_deposit(
    db: AsyncSession, caller: Caller, child_id: int, tokens_returned: int
) -> TokenDeposit:
    """Log physical tokens handed back by a child.  Balances are untouched."""

    if not _is_int(tokens_returned) or tokens_returned <= 0:
        raise ValidationError("tokensReturned must be a positive integer")
    async with atomic(db):
        await _load_child(db, child_id)
        entry = TokenDeposit(
            child_id=child_id,
            volunteer_id=caller.id,
            tokens_returned=tokens_returned,
        )
        db.add(entry)
        await db.flush()
        record_audit(
            db,
            caller.id,
            "token_deposit",
            "TokenDeposit",
            entry.id,
            {"childId": child_id, "tokensReturned": tokens_returned},
        )
    await db.refresh(entry)
    logger.info(
        "Child %s returned %s tokens, recorded by user %s",
        child_id,
        tokens_returned,
        caller.id,
    )
    return entry


async def vendor_return(
    db: AsyncSession,
    caller: Caller,
    vendor_id: int,
    tokens_submitted: int,
    market_date: datetime | None = None,
) -> VendorTokenTurnin:
    """Record tokens a vendor turned in.  Balances are untouched."""

    if not _is_int(tokens_submitted) or tokens_submitted < 0:
        raise ValidationError("tokensSubmitted must be a non-negative integer")
    if market_date is not None and market_date.tzinfo is not None:
        market_date = market_date.astimezone(timezone.utc).replace(tzinfo=None)
    vendor = await db.get(User, vendor_id)
    if vendor is None or vendor.role != UserRole.vendor:
        raise NotFound("Vendor not found")
    async with atomic(db):
        turnin = VendorTokenTurnin(
            vendor_id=vendor_id,
            tokens_submitted=tokens_submitted,
            market_date=market_date or datetime.utcnow(),
            verified_by=caller.id,
        )
        db.add(turnin)
        await db.flush()
        record_audit(
            db,
            caller.id,
            "vendor_return",
            "VendorTokenTurnin",
            turnin.id,
            {"vendorId": vendor_id, "tokensSubmitted": tokens_submitted},
        )
    await db.refresh(turnin)
    logger.info(
        "Vendor %s turned in %s tokens, verified by user %s",
        vendor_id,
        tokens_submitted,
        caller.id,
    )
    return turnin
