"""Endpoints for staff deposits, withdrawals and returned tokens."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app import ledger
from app.acl import OP_DEPOSIT, OP_TOKEN_DEPOSIT, OP_WITHDRAW
from app.auth import Caller, require_operation
from app.database import get_session
from app.schemas import (
    AmountRequest,
    BalanceChange,
    TokenDepositCreate,
    TokenDepositRead,
)

router = APIRouter(tags=["transactions"])


@router.post("/withdraw", response_model=BalanceChange)
async def withdraw_route(
    data: AmountRequest,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_WITHDRAW)),
):
    balance, tx = await ledger.withdraw(db, caller, data.child_id, data.amount_cents)
    return {"balance": balance, "transaction": tx}


@router.post("/deposit", response_model=BalanceChange)
async def deposit_route(
    data: AmountRequest,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_DEPOSIT)),
):
    balance, tx = await ledger.deposit(db, caller, data.child_id, data.amount_cents)
    return {"balance": balance, "transaction": tx}


@router.post("/token-deposit", response_model=TokenDepositRead)
async def token_deposit_route(
    data: TokenDepositCreate,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_TOKEN_DEPOSIT)),
):
    """Log physical tokens a child handed back; balances are unchanged."""
    return await ledger.record_token_deposit(
        db, caller, data.child_id, data.tokens_returned
    )
