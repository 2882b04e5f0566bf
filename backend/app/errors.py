"""Domain exceptions raised by the ledger and lookup helpers.

Each exception knows the HTTP status it maps to; the handler registered in
``app.main`` renders them as ``{"error": message}``.
"""


class LedgerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(LedgerError):
    status_code = 401


class Forbidden(LedgerError):
    status_code = 403


class ValidationError(LedgerError):
    status_code = 400


class NotFound(LedgerError):
    status_code = 404


class Conflict(LedgerError):
    status_code = 409


class InsufficientFunds(LedgerError):
    status_code = 400


class TooSoon(LedgerError):
    """Check-in attempted before the cooldown elapsed."""

    status_code = 429

    def __init__(self, remaining_hours: float):
        super().__init__(
            f"Child was checked in recently. Please wait {remaining_hours} more hours."
        )
        self.remaining_hours = remaining_hours


class IdentitySyncError(LedgerError):
    """The persisted role changed but the identity provider claim did not."""

    status_code = 502
