"""Aggregate import for all API route modules."""

from . import (
    auth,
    users,
    children,
    checkins,
    transactions,
    vendors,
    qr_codes,
    admin,
)

__all__ = [
    "auth",
    "users",
    "children",
    "checkins",
    "transactions",
    "vendors",
    "qr_codes",
    "admin",
]
