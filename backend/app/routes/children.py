"""Routes for adding children and viewing their balances."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app import ledger
from app.acl import (
    OP_CREATE_CHILD,
    OP_VIEW_OWN_CHILDREN,
    ROLE_PARENT,
    STAFF_ROLES,
)
from app.auth import Caller, get_current_caller, require_operation
from app.crud import (
    get_child,
    get_children_by_parent,
    get_siblings,
    get_transactions_by_child,
)
from app.database import get_session
from app.models import Child
from app.schemas import (
    ChildCreate,
    ChildCreated,
    ChildDetail,
    ChildSummary,
    LedgerResponse,
)

router = APIRouter(tags=["children"])

RECENT_TRANSACTIONS = 20


def child_summary(child: Child) -> ChildSummary:
    balance = child.balance
    return ChildSummary(
        id=child.id,
        parent_id=child.parent_id,
        name=child.name,
        gender=child.gender,
        date_of_birth=child.date_of_birth,
        times_checked_in=child.times_checked_in,
        created_at=child.created_at,
        balance_cents=balance.amount_cents if balance else 0,
        last_checkin=balance.last_checkin if balance else None,
        qr_code=child.qr_code.id if child.qr_code else None,
    )


async def _viewable_child(db: AsyncSession, caller: Caller, child_id: int) -> Child:
    """Load a child the caller may see: staff see all, parents their own."""

    if caller.role != ROLE_PARENT and caller.role not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    child = await get_child(db, child_id)
    if not child:
        raise HTTPException(status_code=404, detail="Child not found")
    if caller.role == ROLE_PARENT and child.parent_id != caller.id:
        raise HTTPException(status_code=403, detail="Not authorized")
    return child


@router.post("/child-create", response_model=ChildCreated)
async def create_child_route(
    data: ChildCreate,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_CREATE_CHILD)),
):
    child, balance = await ledger.create_child(
        db,
        caller,
        name=data.name,
        gender=data.gender,
        date_of_birth=data.date_of_birth,
        parent_id=data.parent_id,
    )
    return {"child": child, "balance": balance}


@router.get("/children", response_model=list[ChildSummary])
async def list_my_children(
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_VIEW_OWN_CHILDREN)),
):
    if caller.id is None:
        return []
    children = await get_children_by_parent(db, caller.id)
    return [child_summary(c) for c in children]


@router.get("/children/{child_id}", response_model=ChildDetail)
async def read_child(
    child_id: int,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
):
    child = await _viewable_child(db, caller, child_id)
    siblings = await get_siblings(db, child)
    transactions = await get_transactions_by_child(db, child_id, limit=RECENT_TRANSACTIONS)
    return {
        "child": child_summary(child),
        "siblings": siblings,
        "balance": child.balance,
        "recent_transactions": transactions,
    }


@router.get("/children/{child_id}/transactions", response_model=LedgerResponse)
async def read_child_ledger(
    child_id: int,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
):
    """Return the full ledger and balance for a child."""
    child = await _viewable_child(db, caller, child_id)
    transactions = await get_transactions_by_child(db, child_id)
    balance = child.balance.amount_cents if child.balance else 0
    return {"balance_cents": balance, "transactions": transactions}
