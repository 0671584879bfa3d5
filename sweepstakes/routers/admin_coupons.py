# sweepstakes/routers/admin_coupons.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.schemas.coupons import CouponCountsOut, CouponDetailOut, CouponEventOut, CouponOut
from sweepstakes.services import coupons as coupon_service

router = APIRouter(prefix="/admin/coupons", tags=["Admin - Coupons"])


@router.get("", response_model=list[CouponOut])
async def list_coupons(
    status: str | None = Query(default=None),
    owner_type: str | None = Query(default=None),
    serial_number: str | None = Query(default=None),
    purchase_id: int | None = Query(default=None),
    sale_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return await coupon_service.list_coupons(
        db,
        status=status,
        owner_type=owner_type,
        serial_number=serial_number,
        purchase_id=purchase_id,
        sale_id=sale_id,
        limit=limit,
        offset=offset,
    )


@router.get("/counts", response_model=CouponCountsOut)
async def coupon_counts(
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return CouponCountsOut(**await coupon_service.coupon_counts(db))


@router.get("/{code}", response_model=CouponDetailOut)
async def get_coupon(
    code: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        c = await coupon_service.get_coupon_by_code(db, code)
    except DomainError as e:
        raise http_error(e)

    events = await coupon_service.coupon_events(db, c.id)
    return CouponDetailOut(
        coupon=CouponOut.model_validate(c),
        events=[CouponEventOut.model_validate(ev) for ev in events],
    )
