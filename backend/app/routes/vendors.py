from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app import ledger
from app.acl import OP_VENDOR_RETURN, OP_VIEW_TURNINS, ROLE_VENDOR
from app.auth import Caller, require_operation
from app.crud import list_turnins
from app.database import get_session
from app.schemas import VendorReturnCreate, VendorTurninRead

router = APIRouter(tags=["vendors"])


@router.post("/vendor-return", response_model=VendorTurninRead)
async def vendor_return_route(
    data: VendorReturnCreate,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_VENDOR_RETURN)),
):
    """Record tokens a vendor turned in after market."""
    return await ledger.vendor_return(
        db, caller, data.vendor_id, data.tokens_submitted, data.market_date
    )


@router.get("/vendor/turnins", response_model=list[VendorTurninRead])
async def vendor_turnins(
    vendor_id: int | None = Query(default=None, alias="vendorId"),
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_VIEW_TURNINS)),
):
    """Vendors see their own turn-ins; admins may pick a vendor or see all."""
    if caller.role == ROLE_VENDOR:
        if caller.id is None:
            raise HTTPException(status_code=404, detail="User profile not found")
        vendor_id = caller.id
    return await list_turnins(db, vendor_id)
