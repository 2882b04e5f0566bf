"""FastAPI application entry point.

This module wires together the API routers, configures middleware and
startup tasks, and exposes the ASGI application object used by the
server.  Every failure leaves the API as ``{"error": message}``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import CORS_ORIGINS, LOG_LEVEL
from app.database import create_db_and_tables
from app.errors import LedgerError
from app.routes import (
    admin,
    auth,
    checkins,
    children,
    qr_codes,
    transactions,
    users,
    vendors,
)

# The log level comes from the environment so deployments can adjust
# verbosity without code changes.
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Market Token Ledger",
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    """Create any missing tables."""

    await create_db_and_tables()


app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(children.router, prefix="/api")
app.include_router(checkins.router, prefix="/api")
app.include_router(transactions.router, prefix="/api")
app.include_router(vendors.router, prefix="/api")
app.include_router(qr_codes.router, prefix="/api")
app.include_router(admin.router, prefix="/api")


@app.get("/")
async def read_root():
    return {"message": "Welcome to the Market Token Ledger API"}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler that logs the stack trace once."""
    logger.exception("Unhandled error during request %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred"},
    )
