from datetime import datetime
from typing import Optional

from pydantic import Field

from app.config import QR_BATCH_MAX
from app.schemas.base import CamelModel
from app.schemas.child import ChildRead


class QrCodeCreate(CamelModel):
    count: int = Field(ge=1, le=QR_BATCH_MAX, strict=True)


class QrCodeBatch(CamelModel):
    count: int
    ids: list[str]


class QrCodeRead(CamelModel):
    id: str
    printed: bool
    child_id: Optional[int] = None
    created_at: datetime


class QrCodePage(CamelModel):
    total: int
    data: list[QrCodeRead]


class QrCodeLookup(CamelModel):
    code: QrCodeRead
    child: ChildRead


class QrAssign(CamelModel):
    child_id: int


class QrPrintRequest(CamelModel):
    ids: list[str] = Field(min_length=1)
