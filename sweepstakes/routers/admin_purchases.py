# sweepstakes/routers/admin_purchases.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.schemas.coupons import CouponOut
from sweepstakes.schemas.purchases import (
    ContactUpdate,
    PurchaseDeletedOut,
    PurchaseListOut,
    PurchaseOut,
    ValidationAttach,
)
from sweepstakes.services import approvals, purchases
from sweepstakes.services import coupons as coupon_service

router = APIRouter(prefix="/admin/purchases", tags=["Admin - Purchases"])


@router.get("", response_model=PurchaseListOut)
async def list_purchases(
    status: str | None = Query(default=None),
    q: str | None = Query(default=None, description="serial, document, name, email or invoice"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    items, total = await purchases.list_purchases(db, status=status, search=q, limit=limit, offset=offset)
    return PurchaseListOut(total=total, items=[PurchaseOut.model_validate(p) for p in items])


@router.get("/{purchase_id}", response_model=PurchaseOut)
async def get_purchase(
    purchase_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await purchases.get_purchase(db, purchase_id)
    except DomainError as e:
        raise http_error(e)


@router.patch("/{purchase_id}", response_model=PurchaseOut)
async def update_contact(
    purchase_id: int,
    body: ContactUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await purchases.update_contact(
            db,
            purchase_id=purchase_id,
            fields=body.model_dump(exclude_unset=True),
        )
    except DomainError as e:
        raise http_error(e)


@router.delete("/{purchase_id}", response_model=PurchaseDeletedOut)
async def delete_purchase(
    purchase_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await approvals.delete_purchase(db, purchase_id=purchase_id, actor_ref=admin.ref)
    except DomainError as e:
        raise http_error(e)


@router.post("/{purchase_id}/validation", response_model=PurchaseOut)
async def attach_validation(
    purchase_id: int,
    body: ValidationAttach,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await purchases.attach_validation(
            db,
            purchase_id=purchase_id,
            is_valid=body.is_valid,
            notes=body.notes,
        )
    except DomainError as e:
        raise http_error(e)


@router.post("/{purchase_id}/validation/request", response_model=PurchaseOut)
async def request_validation(
    purchase_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await purchases.request_validation(db, purchase_id=purchase_id)
    except DomainError as e:
        raise http_error(e)


@router.get("/{purchase_id}/coupons", response_model=list[CouponOut])
async def list_purchase_coupons(
    purchase_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return await coupon_service.list_coupons(
        db,
        status=None,
        owner_type=None,
        serial_number=None,
        purchase_id=purchase_id,
        sale_id=None,
        limit=500,
        offset=0,
    )


@router.post("/{purchase_id}/coupons", response_model=list[CouponOut])
async def reissue_coupons(
    purchase_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await coupon_service.reissue_for_purchase(db, purchase_id=purchase_id, actor_ref=admin.ref)
    except DomainError as e:
        raise http_error(e)
