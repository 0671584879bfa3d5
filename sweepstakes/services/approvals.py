# sweepstakes/services/approvals.py
from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import utcnow
from sweepstakes.core.errors import InvalidTransition, NotFoundError, ValidationError
from sweepstakes.integrations.notifier_client import NotifierClient
from sweepstakes.models.coupon import Coupon
from sweepstakes.models.purchase import PURCHASE_APPROVED, PURCHASE_PENDING, PURCHASE_REJECTED, Purchase
from sweepstakes.models.serial import OWNER_BUYER
from sweepstakes.services import coupons as coupon_service
from sweepstakes.services import notifications, serials

logger = structlog.get_logger(__name__)


async def _lock_purchase(db: AsyncSession, purchase_id: int) -> Purchase:
    stmt = (
        select(Purchase)
        .where(Purchase.id == int(purchase_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    p = (await db.execute(stmt)).scalar_one_or_none()
    if not p:
        raise NotFoundError("Purchase not found", purchase_id=purchase_id)
    return p


async def approve(
    db: AsyncSession,
    *,
    purchase_id: int,
    reviewer_ref: str,
    notes: str | None = None,
    notifier: NotifierClient | None = None,
) -> tuple[Purchase, list[Coupon]]:
    """
    PENDING -> APPROVED and coupon issuance, committed together.

    Approving an APPROVED purchase re-runs issuance (idempotent) and
    returns the existing set. REJECTED is final.
    """
    try:
        p = await _lock_purchase(db, purchase_id)

        if p.status == PURCHASE_REJECTED:
            raise InvalidTransition(
                "Rejected purchases cannot be approved",
                purchase_id=p.id,
                status=p.status,
            )

        first_approval = p.status == PURCHASE_PENDING
        if first_approval:
            now = utcnow()
            p.status = PURCHASE_APPROVED
            p.reviewer_ref = reviewer_ref
            p.review_notes = (notes or "").strip() or None
            p.reviewed_at = now
            p.approved_at = now
            p.updated_at = now

        issued = await coupon_service.issue(db, p, actor_ref=reviewer_ref)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "purchase_approved" if first_approval else "purchase_approve_replayed",
        purchase_id=p.id,
        reviewer=reviewer_ref,
        coupons=len(issued),
    )

    if first_approval:
        await notifications.notify_purchase_approved(db, p, issued, notifier)
    return p, issued


async def reject(
    db: AsyncSession,
    *,
    purchase_id: int,
    reason: str,
    reviewer_ref: str,
    notifier: NotifierClient | None = None,
) -> Purchase:
    """PENDING -> REJECTED. The serial stays USED; only a delete frees it."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required", purchase_id=purchase_id)

    try:
        p = await _lock_purchase(db, purchase_id)

        if p.status == PURCHASE_REJECTED:
            await db.commit()
            return p
        if p.status != PURCHASE_PENDING:
            raise InvalidTransition(
                "Only pending purchases can be rejected",
                purchase_id=p.id,
                status=p.status,
            )

        now = utcnow()
        p.status = PURCHASE_REJECTED
        p.reviewer_ref = reviewer_ref
        p.review_notes = reason
        p.reviewed_at = now
        p.updated_at = now
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("purchase_rejected", purchase_id=p.id, reviewer=reviewer_ref)
    await notifications.notify_purchase_rejected(db, p, notifier)
    return p


async def delete_purchase(db: AsyncSession, *, purchase_id: int, actor_ref: str) -> dict:
    """
    Administrative cascade: VOID the coupons, free the BUYER claim, drop the
    row. Refused while one of the coupons is a draw winner.
    """
    try:
        p = await _lock_purchase(db, purchase_id)
        serial_number = p.serial_number

        voided = await coupon_service.void_for_owner(
            db,
            purchase_id=p.id,
            actor_ref=actor_ref,
            reason="purchase_deleted",
        )

        found = await serials.lookup(db, serial_number, OWNER_BUYER)
        if found.owner_ref == p.id:
            await serials.release(db, serial_number, OWNER_BUYER)

        await db.delete(p)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "purchase_deleted",
        purchase_id=purchase_id,
        serial_number=serial_number,
        coupons_voided=voided,
        actor=actor_ref,
    )
    return {"purchase_id": int(purchase_id), "serial_number": serial_number, "coupons_voided": voided}
