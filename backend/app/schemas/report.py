"""Admin listing rows and pages."""

from datetime import date, datetime
from typing import Any, Optional

from app.models import Gender
from app.schemas.base import CamelModel


class ChildReportRow(CamelModel):
    id: int
    name: str
    gender: Gender
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    parent_id: int
    parent_name: str
    parent_email: str
    balance_cents: int
    times_checked_in: int
    last_checkin: Optional[datetime] = None
    qr_code: Optional[str] = None


class ChildReportPage(CamelModel):
    total: int
    data: list[ChildReportRow]


class CheckinReportRow(CamelModel):
    id: int
    child_id: int
    child_name: str
    volunteer_name: Optional[str] = None
    checkin_time: datetime
    checkin_date: date


class CheckinReportPage(CamelModel):
    total: int
    data: list[CheckinReportRow]


class AuditLogRead(CamelModel):
    id: int
    user_id: Optional[int] = None
    action: str
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: datetime


class AuditLogPage(CamelModel):
    total: int
    data: list[AuditLogRead]
