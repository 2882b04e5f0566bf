"""Convenience imports for all schema classes used by the API."""

from .base import CamelModel
from .user import (
    UserCreate,
    UserLogin,
    UserResponse,
    UserUpdate,
    RoleUpdate,
    UserPage,
)
from .transaction import (
    BalanceRead,
    TransactionRead,
    AmountRequest,
    BalanceChange,
    LedgerResponse,
    TokenDepositCreate,
    TokenDepositRead,
)
from .child import (
    ChildCreate,
    ChildRead,
    SiblingRead,
    ChildCreated,
    ChildSummary,
    ChildDetail,
    CheckinResult,
)
from .vendor import VendorReturnCreate, VendorTurninRead
from .qr import (
    QrCodeCreate,
    QrCodeBatch,
    QrCodeRead,
    QrCodePage,
    QrCodeLookup,
    QrAssign,
    QrPrintRequest,
)
from .report import (
    ChildReportRow,
    ChildReportPage,
    CheckinReportRow,
    CheckinReportPage,
    AuditLogRead,
    AuditLogPage,
)

__all__ = [
    "CamelModel",
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "UserUpdate",
    "RoleUpdate",
    "UserPage",
    "BalanceRead",
    "TransactionRead",
    "AmountRequest",
    "BalanceChange",
    "LedgerResponse",
    "TokenDepositCreate",
    "TokenDepositRead",
    "ChildCreate",
    "ChildRead",
    "SiblingRead",
    "ChildCreated",
    "ChildSummary",
    "ChildDetail",
    "CheckinResult",
    "VendorReturnCreate",
    "VendorTurninRead",
    "QrCodeCreate",
    "QrCodeBatch",
    "QrCodeRead",
    "QrCodePage",
    "QrCodeLookup",
    "QrAssign",
    "QrPrintRequest",
    "ChildReportRow",
    "ChildReportPage",
    "CheckinReportRow",
    "CheckinReportPage",
    "AuditLogRead",
    "AuditLogPage",
]
