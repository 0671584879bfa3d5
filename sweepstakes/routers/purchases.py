# sweepstakes/routers/purchases.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.schemas.coupons import CouponOut
from sweepstakes.schemas.purchases import (
    ApprovalOut,
    ApproveRequest,
    PurchaseOut,
    PurchaseReceipt,
    PurchaseSubmit,
    RejectRequest,
)
from sweepstakes.services import approvals, purchases

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.post("", response_model=PurchaseReceipt, status_code=status.HTTP_201_CREATED)
async def submit_purchase(
    payload: PurchaseSubmit,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await purchases.submit(db, **payload.model_dump())
    except DomainError as e:
        # end users never see internal context
        raise http_error(e, public=True)


@router.put("/{purchase_id}/approve", response_model=ApprovalOut)
async def approve_purchase(
    purchase_id: int,
    body: ApproveRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        p, issued = await approvals.approve(
            db,
            purchase_id=purchase_id,
            reviewer_ref=admin.ref,
            notes=body.notes if body else None,
        )
    except DomainError as e:
        raise http_error(e)
    return ApprovalOut(
        purchase=PurchaseOut.model_validate(p),
        coupons=[CouponOut.model_validate(c) for c in issued],
    )


@router.put("/{purchase_id}/reject", response_model=PurchaseOut)
async def reject_purchase(
    purchase_id: int,
    body: RejectRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await approvals.reject(db, purchase_id=purchase_id, reason=body.reason, reviewer_ref=admin.ref)
    except DomainError as e:
        raise http_error(e)
