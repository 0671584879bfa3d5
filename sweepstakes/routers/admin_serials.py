# sweepstakes/routers/admin_serials.py
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.models.serial import SerialClaim, SerialEntry
from sweepstakes.schemas.serials import (
    ImportReportOut,
    SerialBlockRequest,
    SerialClaimOut,
    SerialCreate,
    SerialImportRequest,
    SerialListOut,
    SerialOut,
)
from sweepstakes.services import serials

router = APIRouter(prefix="/admin/serials", tags=["Admin - Serials"])


def _serial_out(entry: SerialEntry, claims: list[SerialClaim]) -> SerialOut:
    return SerialOut(
        id=entry.id,
        serial_number=entry.serial_number,
        product_id=entry.product_id,
        tier=entry.tier,
        coupon_multiplier=entry.coupon_multiplier,
        block_reason=entry.block_reason,
        created_at=entry.created_at,
        claims=[SerialClaimOut.model_validate(c) for c in claims],
    )


@router.post("", response_model=SerialOut, status_code=status.HTTP_201_CREATED)
async def create_serial(
    body: SerialCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        entry = await serials.create_serial(db, **body.model_dump())
        return _serial_out(*await serials.get_serial_detail(db, entry.serial_number))
    except DomainError as e:
        raise http_error(e)


@router.post("/import", response_model=ImportReportOut)
async def import_serials(
    body: SerialImportRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    report = await serials.bulk_import(db, [r.model_dump() for r in body.rows])
    return ImportReportOut(**asdict(report))


@router.get("", response_model=SerialListOut)
async def list_serials(
    q: str | None = Query(default=None, description="serial number prefix"),
    status: str | None = Query(default=None),
    owner_class: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        rows, total = await serials.list_serials(
            db,
            search=q,
            status=status,
            owner_class=owner_class,
            limit=limit,
            offset=offset,
        )
    except DomainError as e:
        raise http_error(e)
    return SerialListOut(total=total, items=[_serial_out(e, c) for e, c in rows])


@router.get("/stats")
async def serial_stats(
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return await serials.serial_stats(db)


@router.get("/{serial_number}", response_model=SerialOut)
async def get_serial(
    serial_number: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return _serial_out(*await serials.get_serial_detail(db, serial_number))
    except DomainError as e:
        raise http_error(e)


@router.post("/{serial_number}/block", response_model=SerialOut)
async def block_serial(
    serial_number: str,
    body: SerialBlockRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        await serials.set_blocked(db, serial=serial_number, blocked=True, reason=body.reason)
        return _serial_out(*await serials.get_serial_detail(db, serial_number))
    except DomainError as e:
        raise http_error(e)


@router.post("/{serial_number}/unblock", response_model=SerialOut)
async def unblock_serial(
    serial_number: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        await serials.set_blocked(db, serial=serial_number, blocked=False, reason=None)
        return _serial_out(*await serials.get_serial_detail(db, serial_number))
    except DomainError as e:
        raise http_error(e)


@router.delete("/{serial_number}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_serial(
    serial_number: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        await serials.delete_serial(db, serial=serial_number)
    except DomainError as e:
        raise http_error(e)
