"""Admin dashboard: listings, CSV exports, user roles and the audit log."""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import OP_MANAGE_USERS, OP_REPORTS
from app.auth import Caller, LocalIdentityProvider, get_identity_provider, require_operation
from app.crud import change_user_role, get_user, list_audit_logs, list_users
from app.database import get_session
from app.models import UserRole
from app.reports import (
    CHECKIN_CSV_COLUMNS,
    CHILD_CSV_COLUMNS,
    clamp_page,
    list_checkins_report,
    list_children_report,
    parse_range,
    rows_to_csv,
)
from app.schemas import (
    AuditLogPage,
    CheckinReportPage,
    ChildReportPage,
    RoleUpdate,
    UserPage,
    UserResponse,
)

router = APIRouter(prefix="/admin", tags=["admin"])


def _csv_response(body: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([body]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/children", response_model=ChildReportPage)
async def admin_list_children(
    limit: int | None = None,
    offset: int | None = None,
    sort_by: str | None = Query(default=None, alias="sortBy"),
    order: str | None = None,
    search: str | None = None,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_REPORTS)),
):
    total, rows = await list_children_report(
        db, search=search, sort_by=sort_by, order=order, limit=limit, offset=offset
    )
    return {"total": total, "data": rows}


@router.get("/children/export")
async def admin_export_children(
    sort_by: str | None = Query(default=None, alias="sortBy"),
    order: str | None = None,
    search: str | None = None,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_REPORTS)),
):
    _, rows = await list_children_report(
        db, search=search, sort_by=sort_by, order=order, paginate=False
    )
    return _csv_response(rows_to_csv(rows, CHILD_CSV_COLUMNS), "children.csv")


@router.get("/checkins", response_model=CheckinReportPage)
async def admin_list_checkins(
    start: str | None = Query(default=None, alias="from"),
    end: str | None = Query(default=None, alias="to"),
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_REPORTS)),
):
    start_at, end_at = parse_range(start, end)
    rows = await list_checkins_report(db, start_at, end_at)
    return {"total": len(rows), "data": rows}


@router.get("/checkins/export")
async def admin_export_checkins(
    start: str | None = Query(default=None, alias="from"),
    end: str | None = Query(default=None, alias="to"),
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_REPORTS)),
):
    start_at, end_at = parse_range(start, end)
    rows = await list_checkins_report(db, start_at, end_at)
    return _csv_response(rows_to_csv(rows, CHECKIN_CSV_COLUMNS), "checkins.csv")


@router.get("/users", response_model=UserPage)
async def admin_list_users(
    role: UserRole | None = None,
    search: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_MANAGE_USERS)),
):
    limit, offset = clamp_page(limit, offset)
    total, users = await list_users(db, role, search, limit, offset)
    return {"total": total, "data": users}


@router.get("/users/{user_id}", response_model=UserResponse)
async def admin_get_user(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_MANAGE_USERS)),
):
    user = await get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def admin_update_role(
    user_id: int,
    data: RoleUpdate,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_MANAGE_USERS)),
    provider: LocalIdentityProvider = Depends(get_identity_provider),
):
    """Change a user's role here and in the identity provider's claim."""
    user = await get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return await change_user_role(db, provider, user, data.role, caller.id)


@router.get("/audit-logs", response_model=AuditLogPage)
async def admin_audit_logs(
    action: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_REPORTS)),
):
    limit, offset = clamp_page(limit, offset)
    total, entries = await list_audit_logs(db, action, limit, offset)
    return {"total": total, "data": entries}
