"""Runtime configuration.

Values are read from environment variables once at import time so that
deployments can tune them without code changes.  The ledger rules
(cooldown, credit amount, QR batch size) live here rather than in the
modules that enforce them so they can be audited in one place.
"""

import os

DATABASE_URL = os.getenv(
    "DATABASE_URL", "sqlite+aiosqlite:///./market_tokens.db"
)
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# Check-in rules
CHECKIN_COOLDOWN_HOURS = float(os.getenv("CHECKIN_COOLDOWN_HOURS", "14"))
CHECKIN_CREDIT_CENTS = int(os.getenv("CHECKIN_CREDIT_CENTS", "200"))

# QR code issuance.  The alphabet leaves out 0/O, 1/I/L.
QR_BATCH_MAX = int(os.getenv("QR_BATCH_MAX", "1000"))
QR_CODE_LENGTH = int(os.getenv("QR_CODE_LENGTH", "8"))
QR_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

# Admin listings
PAGE_SIZE_DEFAULT = 50
PAGE_SIZE_MAX = 1000

# Printed QR cards
CARD_TITLE = os.getenv("CARD_TITLE", "Market Token Card")
CARD_DPI = 150
