from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import OP_LOOKUP_PARENTS
from app.auth import Caller, get_current_caller, require_operation
from app.crud import list_users, save_user
from app.database import get_session
from app.models import UserRole
from app.schemas import UserPage, UserResponse, UserUpdate

router = APIRouter(tags=["users"])


def _require_profile(caller: Caller):
    if caller.user is None:
        raise HTTPException(status_code=404, detail="User profile not found")
    return caller.user


@router.get("/me", response_model=UserResponse)
async def read_current_user(caller: Caller = Depends(get_current_caller)):
    """Return details for the authenticated user."""
    return _require_profile(caller)


@router.put("/me", response_model=UserResponse)
async def update_current_user(
    data: UserUpdate,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
):
    user = _require_profile(caller)
    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "name" and value is None:
            continue
        setattr(user, field, value)
    return await save_user(db, user)


@router.get("/parents", response_model=UserPage)
async def search_parents(
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_LOOKUP_PARENTS)),
):
    """Parent lookup for staff adding a child on a family's behalf."""
    limit = max(1, min(limit, 100))
    total, users = await list_users(db, UserRole.parent, search, limit, max(0, offset))
    return {"total": total, "data": users}
