from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas.base import CamelModel


class VendorReturnCreate(CamelModel):
    vendor_id: int
    tokens_submitted: int = Field(ge=0, strict=True)
    market_date: Optional[datetime] = None


class VendorTurninRead(CamelModel):
    id: int
    vendor_id: int
    tokens_submitted: int
    market_date: datetime
    verified_by: Optional[int] = None
    created_at: datetime
