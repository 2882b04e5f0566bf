"""QR code issuance, lookup, assignment and printing."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import (
    OP_ASSIGN_QR_CODE,
    OP_CREATE_QR_CODES,
    OP_LIST_QR_CODES,
    OP_PRINT_QR_CODES,
)
from app.auth import Caller, require_operation
from app.crud import (
    assign_qr_code,
    generate_qr_codes,
    get_qr_code,
    get_qr_codes_for_print,
    list_qr_codes,
    mark_qr_codes_printed,
)
from app.database import get_session
from app.printing import render_cards_pdf
from app.reports import clamp_page
from app.schemas import (
    QrAssign,
    QrCodeBatch,
    QrCodeCreate,
    QrCodeLookup,
    QrCodePage,
    QrCodeRead,
    QrPrintRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["qr-codes"])


@router.post("/admin/create-qr-codes", response_model=QrCodeBatch)
async def create_qr_codes(
    data: QrCodeCreate,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_CREATE_QR_CODES)),
):
    ids = await generate_qr_codes(db, data.count, caller.id)
    return {"count": len(ids), "ids": ids}


@router.get("/admin/qr-codes", response_model=QrCodePage)
async def list_qr_codes_route(
    printed: bool | None = None,
    assigned: bool | None = None,
    limit: int | None = None,
    offset: int | None = None,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_LIST_QR_CODES)),
):
    limit, offset = clamp_page(limit, offset)
    total, codes = await list_qr_codes(db, printed, assigned, limit, offset)
    return {"total": total, "data": codes}


async def _print_cards(db: AsyncSession, caller: Caller, ids: list[str]) -> Response:
    codes = await get_qr_codes_for_print(db, ids)
    pdf = render_cards_pdf([code.id for code in codes])
    await mark_qr_codes_printed(db, codes, caller.id)
    logger.info("Printed %s QR cards for user %s", len(codes), caller.id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment; filename=qr-cards.pdf"},
    )


@router.post("/admin/qr-codes/print")
async def print_qr_codes(
    data: QrPrintRequest,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_PRINT_QR_CODES)),
):
    """Return a PDF sheet of front and back cards for the given codes."""
    return await _print_cards(db, caller, data.ids)


@router.post("/print")
async def print_cards(
    data: QrPrintRequest,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_PRINT_QR_CODES)),
):
    return await _print_cards(db, caller, data.ids)


@router.get("/qr-codes/{code}", response_model=QrCodeLookup)
async def lookup_qr_code(
    code: str,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_ASSIGN_QR_CODE)),
):
    """Resolve a scanned code to the child it belongs to."""
    qr = await get_qr_code(db, code.strip().upper())
    if not qr or qr.child is None:
        raise HTTPException(status_code=404, detail="QR code not assigned")
    return {"code": qr, "child": qr.child}


@router.post("/qr-codes/{code}/assign", response_model=QrCodeRead)
async def assign_qr_code_route(
    code: str,
    data: QrAssign,
    db: AsyncSession = Depends(get_session),
    caller: Caller = Depends(require_operation(OP_ASSIGN_QR_CODE)),
):
    return await assign_qr_code(db, code.strip().upper(), data.child_id, caller.id)
