# sweepstakes/routers/admin_exports.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.services import exports

router = APIRouter(prefix="/admin/exports", tags=["Admin - Exports"])


@router.get("/purchases.csv")
async def purchases_csv(
    status: str | None = Query(default=None),
    limit: int = Query(default=50000, ge=1, le=200000),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    body = await exports.purchases_csv(db, status=status, limit=limit)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="purchases.csv"'},
    )


@router.get("/draws/{draw_id}/winners.csv")
async def winners_csv(
    draw_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        body = await exports.winners_csv(db, draw_id=draw_id)
    except DomainError as e:
        raise http_error(e)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="draw_{draw_id}_winners.csv"'},
    )


@router.get("/draws/{draw_id}/winners.pdf")
async def winners_pdf(
    draw_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        pdf_bytes = await exports.winners_pdf(db, draw_id=draw_id)
    except DomainError as e:
        raise http_error(e)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="draw_{draw_id}_winners.pdf"'},
    )
