"""Asynchronous CRUD helpers for the application's data models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Centralizing the logic keeps route
handlers light and makes behavior easier to test.  Balance-changing
operations live in ``app.ledger``.
"""

import logging
import secrets
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from app.config import QR_BATCH_MAX, QR_CODE_ALPHABET, QR_CODE_LENGTH
from app.database import atomic, insert_ignoring_conflicts
from app.errors import Conflict, IdentitySyncError, NotFound, ValidationError
from app.models import (
    AuditLog,
    Child,
    Credential,
    QrCode,
    Transaction,
    User,
    UserRole,
    VendorTokenTurnin,
)

logger = logging.getLogger(__name__)


def record_audit(
    db: AsyncSession,
    actor_id: int | None,
    action: str,
    entity: str | None = None,
    entity_id=None,
    details: dict | None = None,
) -> AuditLog:
    """Stage an audit row; it is committed with the surrounding unit."""

    entry = AuditLog(
        user_id=actor_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=details,
    )
    db.add(entry)
    return entry


async def list_audit_logs(
    db: AsyncSession, action: str | None, limit: int, offset: int
) -> tuple[int, list[AuditLog]]:
    """Return audit rows newest first along with the unpaginated total."""

    query = select(AuditLog)
    if action:
        query = query.where(AuditLog.action == action)
    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return total, result.scalars().all()


# --- users -----------------------------------------------------------------


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    """Load a user by primary key."""
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Return a user by email or ``None`` if not found."""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def register_user(db: AsyncSession, provider, user: User, password: str) -> User:
    """Create the login credential and the parent profile together."""

    existing = await db.execute(
        select(Credential.subject_id).where(Credential.email == user.email)
    )
    if existing.first() or await get_user_by_email(db, user.email):
        raise Conflict("Email is already registered")
    credential = provider.new_credential(user.email, password, user.role.value)
    user.auth_uid = credential.subject_id
    try:
        async with atomic(db):
            db.add(credential)
            db.add(user)
            await db.flush()
            record_audit(db, user.id, "register", "User", user.id, {"email": user.email})
    except IntegrityError:
        raise Conflict("Email is already registered")
    await db.refresh(user)
    return user


async def save_user(db: AsyncSession, user: User) -> User:
    """Persist changes to an existing user."""

    user.updated_at = datetime.utcnow()
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def list_users(
    db: AsyncSession,
    role: UserRole | None,
    search: str | None,
    limit: int,
    offset: int,
) -> tuple[int, list[User]]:
    query = select(User)
    if role is not None:
        query = query.where(User.role == role)
    if search:
        query = query.where(
            or_(
                User.name.icontains(search, autoescape=True),
                User.email.icontains(search, autoescape=True),
            )
        )
    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(query.order_by(User.name, User.id).offset(offset).limit(limit))
    return total, result.scalars().all()


async def change_user_role(
    db: AsyncSession, provider, user: User, role: UserRole, actor_id: int | None
) -> User:
    """Update the persisted role, then the identity provider's role claim.

    The two writes are not atomic.  When the second one fails the new role
    stays saved and ``IdentitySyncError`` tells the operator to reconcile
    the claim by hand.
    """

    previous = user.role
    async with atomic(db):
        user.role = role
        user.updated_at = datetime.utcnow()
        db.add(user)
        record_audit(
            db,
            actor_id,
            "change_role",
            "User",
            user.id,
            {"from": previous.value, "to": role.value},
        )
    logger.info("User %s role changed from %s to %s", user.id, previous.value, role.value)

    try:
        await provider.set_role_claim(db, user.auth_uid, role.value)
    except Exception as exc:
        await db.rollback()
        logger.error(
            "Role claim for user %s (%s) not updated to %s: %s",
            user.id,
            user.auth_uid,
            role.value,
            exc,
        )
        raise IdentitySyncError(
            "Role saved but the identity provider claim could not be updated; "
            "manual reconciliation required"
        ) from exc
    await db.refresh(user)
    return user


# --- children ----------------------------------------------------------------


async def get_child(db: AsyncSession, child_id: int) -> Child | None:
    """Fetch a child with balance and QR code loaded, or ``None``."""
    result = await db.execute(
        select(Child)
        .where(Child.id == child_id)
        .options(selectinload(Child.balance), selectinload(Child.qr_code))
    )
    return result.scalar_one_or_none()


async def get_children_by_parent(db: AsyncSession, parent_id: int) -> list[Child]:
    """Return all children of a parent ordered by name."""
    result = await db.execute(
        select(Child)
        .where(Child.parent_id == parent_id)
        .options(selectinload(Child.balance), selectinload(Child.qr_code))
        .order_by(Child.name, Child.id)
    )
    return result.scalars().all()


async def get_siblings(db: AsyncSession, child: Child) -> list[dict]:
    """Other children of the same parent, id and name only."""
    result = await db.execute(
        select(Child.id, Child.name)
        .where(Child.parent_id == child.parent_id, Child.id != child.id)
        .order_by(Child.name, Child.id)
    )
    return [{"id": row.id, "name": row.name} for row in result.all()]


async def get_transactions_by_child(
    db: AsyncSession, child_id: int, limit: int | None = None
) -> list[Transaction]:
    """Return a child's transactions, newest first."""

    query = (
        select(Transaction)
        .where(Transaction.child_id == child_id)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


# --- vendors -----------------------------------------------------------------


async def list_turnins(db: AsyncSession, vendor_id: int | None) -> list[VendorTokenTurnin]:
    query = select(VendorTokenTurnin)
    if vendor_id is not None:
        query = query.where(VendorTokenTurnin.vendor_id == vendor_id)
    result = await db.execute(
        query.order_by(VendorTokenTurnin.market_date.desc(), VendorTokenTurnin.id.desc())
    )
    return result.scalars().all()


# --- QR codes ----------------------------------------------------------------


def new_qr_code_id() -> str:
    return "".join(secrets.choice(QR_CODE_ALPHABET) for _ in range(QR_CODE_LENGTH))


async def generate_qr_codes(
    db: AsyncSession, count: int, actor_id: int | None
) -> list[str]:
    """Insert ``count`` fresh codes, skipping any id that already exists."""

    if count < 1 or count > QR_BATCH_MAX:
        raise ValidationError(f"count must be between 1 and {QR_BATCH_MAX}")
    table = QrCode.__table__
    created: list[str] = []
    async with atomic(db):
        while len(created) < count:
            candidates = {new_qr_code_id() for _ in range(count - len(created))}
            now = datetime.utcnow()
            stmt = (
                insert_ignoring_conflicts(db, table)
                .values(
                    [
                        {"id": code, "printed": False, "child_id": None, "created_at": now}
                        for code in candidates
                    ]
                )
                .on_conflict_do_nothing(index_elements=["id"])
                .returning(table.c.id)
            )
            result = await db.execute(stmt)
            created.extend(result.scalars().all())
        record_audit(db, actor_id, "create_qr_codes", "QrCode", None, {"count": count})
    logger.info("Generated %s QR codes for user %s", count, actor_id)
    return created


async def list_qr_codes(
    db: AsyncSession,
    printed: bool | None,
    assigned: bool | None,
    limit: int,
    offset: int,
) -> tuple[int, list[QrCode]]:
    query = select(QrCode)
    if printed is not None:
        query = query.where(QrCode.printed == printed)
    if assigned is True:
        query = query.where(QrCode.child_id.is_not(None))
    elif assigned is False:
        query = query.where(QrCode.child_id.is_(None))
    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(
        query.order_by(QrCode.created_at.desc(), QrCode.id).offset(offset).limit(limit)
    )
    return total, result.scalars().all()


async def get_qr_code(db: AsyncSession, code: str) -> QrCode | None:
    result = await db.execute(
        select(QrCode).where(QrCode.id == code).options(selectinload(QrCode.child))
    )
    return result.scalar_one_or_none()


async def get_qr_codes_for_print(db: AsyncSession, ids: list[str]) -> list[QrCode]:
    """Return the requested codes in request order; every id must exist."""

    if not ids:
        raise ValidationError("ids must not be empty")
    result = await db.execute(select(QrCode).where(QrCode.id.in_(ids)))
    by_id = {code.id: code for code in result.scalars().all()}
    missing = [code_id for code_id in ids if code_id not in by_id]
    if missing:
        raise NotFound(f"Unknown QR codes: {', '.join(missing)}")
    return [by_id[code_id] for code_id in ids]


async def mark_qr_codes_printed(
    db: AsyncSession, codes: list[QrCode], actor_id: int | None
) -> None:
    async with atomic(db):
        for code in codes:
            code.printed = True
            db.add(code)
        record_audit(
            db, actor_id, "print_qr_codes", "QrCode", None, {"ids": [c.id for c in codes]}
        )


async def assign_qr_code(
    db: AsyncSession, code_id: str, child_id: int, actor_id: int | None
) -> QrCode:
    """Attach an unassigned code to a child that has no code yet."""

    try:
        async with atomic(db):
            result = await db.execute(
                select(QrCode).where(QrCode.id == code_id).with_for_update()
            )
            code = result.scalar_one_or_none()
            if code is None:
                raise NotFound("QR code not found")
            if code.child_id is not None:
                raise Conflict("QR code is already assigned")
            child = await db.get(Child, child_id)
            if child is None:
                raise NotFound("Child not found")
            taken = await db.execute(select(QrCode.id).where(QrCode.child_id == child_id))
            if taken.first():
                raise Conflict("Child already has a QR code")
            code.child_id = child_id
            db.add(code)
            record_audit(
                db, actor_id, "assign_qr_code", "QrCode", code_id, {"childId": child_id}
            )
    except IntegrityError:
        raise Conflict("Child already has a QR code")
    logger.info("QR code %s assigned to child %s by user %s", code_id, child_id, actor_id)
    return await get_qr_code(db, code_id)
