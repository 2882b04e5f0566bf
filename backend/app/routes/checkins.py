from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app import ledger
from app.acl import OP_CHECKIN
from app.auth import Caller, require_operation
from app.database import get_session
from app.schemas import CheckinResult

router = APIRouter(tags=["checkins"])


@router.post("/checkin/{child_id}", response_model=CheckinResult)
async def check_in_child(
    child_id: int,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_CHECKIN)),
):
    """Record attendance and credit the child's balance.

    Responds 429 while the cooldown since the last check-in is running.
    """
    child, siblings, balance = await ledger.check_in(db, caller, child_id)
    return {"child": child, "siblings": siblings, "balance": balance}
