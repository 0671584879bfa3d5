# sweepstakes/services/coupons.py
from __future__ import annotations

import secrets

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.config import settings
from sweepstakes.core.db import utcnow
from sweepstakes.core.errors import ConflictError, DuplicateCouponCode, IntegrityViolation, NotFoundError
from sweepstakes.models.coupon import COUPON_ACTIVE, COUPON_VOID, COUPON_WINNER, Coupon
from sweepstakes.models.coupon_event import CouponEvent
from sweepstakes.models.purchase import PURCHASE_APPROVED, Purchase
from sweepstakes.models.seller import SellerSale
from sweepstakes.models.serial import OWNER_BUYER, OWNER_SELLER

logger = structlog.get_logger(__name__)

# no 0/O, 1/I/L
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

# savepoint attempts when a concurrent issuer or a code collision hits a unique constraint
_INSERT_ATTEMPTS = 3


def _generate_coupon_code() -> str:
    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(settings.COUPON_CODE_LENGTH))
    return f"{settings.COUPON_CODE_PREFIX.upper()}-{body}"


def buyer_owner_key(document_number: str) -> str:
    return f"{OWNER_BUYER}:{document_number.strip().upper()}"


def seller_owner_key(seller_id: int) -> str:
    return f"{OWNER_SELLER}:{int(seller_id)}"


def log_event(
    db: AsyncSession,
    *,
    coupon_id: int,
    actor_ref: str | None,
    event_type: str,
    meta: dict | None = None,
) -> None:
    db.add(
        CouponEvent(
            coupon_id=coupon_id,
            actor_ref=actor_ref,
            event_type=event_type,
            meta=meta or {},
        )
    )


async def _fresh_codes(db: AsyncSession, count: int) -> list[str]:
    codes: list[str] = []

    for _ in range(count):
        code: str | None = None

        # Avoid relying on the unique index mid-batch: pre-check for collisions
        for _attempt in range(settings.COUPON_CODE_MAX_ATTEMPTS):
            candidate = _generate_coupon_code()
            if candidate in codes:
                continue
            exists = await db.execute(select(Coupon.id).where(Coupon.code == candidate))
            if exists.scalar_one_or_none() is None:
                code = candidate
                break

        if code is None:
            raise DuplicateCouponCode(
                "Failed to generate a unique coupon code",
                attempts=settings.COUPON_CODE_MAX_ATTEMPTS,
            )
        codes.append(code)

    return codes


def _owner_filter(purchase_id: int | None, sale_id: int | None):
    if purchase_id is not None:
        return Coupon.owner_purchase_id == int(purchase_id)
    return Coupon.owner_sale_id == int(sale_id)


async def _live_coupons(db: AsyncSession, *, purchase_id: int | None = None, sale_id: int | None = None) -> list[Coupon]:
    stmt = (
        select(Coupon)
        .where(_owner_filter(purchase_id, sale_id), Coupon.status != COUPON_VOID)
        .order_by(Coupon.issue_seq.asc())
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def _issue_set(
    db: AsyncSession,
    *,
    owner_type: str,
    purchase_id: int | None,
    sale_id: int | None,
    owner_key: str,
    multiplier: int,
    product_id: int,
    serial_number: str,
    tier: str,
    actor_ref: str | None,
) -> list[Coupon]:
    """
    Mint `multiplier` coupons for one owner, or return the existing set.

    The (owner, issue_seq) unique constraints make a second concurrent
    issuer fail inside its savepoint; it then finds the winner's set and
    returns it. A partial set is never repaired.
    """
    owner_ctx = {"purchase_id": purchase_id, "sale_id": sale_id, "owner_type": owner_type}

    for attempt in range(_INSERT_ATTEMPTS):
        existing = await _live_coupons(db, purchase_id=purchase_id, sale_id=sale_id)
        if len(existing) == multiplier:
            if attempt == 0:
                logger.info("coupons_issue_replayed", count=len(existing), **owner_ctx)
            return existing
        if existing:
            logger.error("coupon_set_mismatch", expected=multiplier, found=len(existing), **owner_ctx)
            raise IntegrityViolation(
                "Existing coupon set does not match the multiplier",
                expected=multiplier,
                found=len(existing),
                **owner_ctx,
            )

        codes = await _fresh_codes(db, multiplier)
        created: list[Coupon] = []
        try:
            async with db.begin_nested():
                for seq, code in enumerate(codes, start=1):
                    c = Coupon(
                        code=code,
                        owner_type=owner_type,
                        owner_purchase_id=purchase_id,
                        owner_sale_id=sale_id,
                        owner_key=owner_key,
                        issue_seq=seq,
                        product_id=product_id,
                        serial_number=serial_number,
                        tier=tier,
                        status=COUPON_ACTIVE,
                    )
                    db.add(c)
                    created.append(c)
                await db.flush()
        except IntegrityError:
            logger.info("coupons_issue_collision", attempt=attempt + 1, **owner_ctx)
            continue

        for c in created:
            log_event(
                db,
                coupon_id=c.id,
                actor_ref=actor_ref,
                event_type="issued",
                meta={"serial_number": serial_number, "issue_seq": c.issue_seq, **owner_ctx},
            )

        total = await db.execute(
            select(func.count(Coupon.id)).where(_owner_filter(purchase_id, sale_id), Coupon.status != COUPON_VOID)
        )
        if int(total.scalar_one()) != multiplier:
            logger.error("coupon_issue_count_mismatch", expected=multiplier, **owner_ctx)
            raise IntegrityViolation("Issued coupon count mismatch", expected=multiplier, **owner_ctx)

        logger.info("coupons_issued", count=len(created), serial_number=serial_number, **owner_ctx)
        return created

    existing = await _live_coupons(db, purchase_id=purchase_id, sale_id=sale_id)
    if len(existing) == multiplier:
        return existing
    raise DuplicateCouponCode("Could not issue coupons after repeated collisions", **owner_ctx)


async def issue(db: AsyncSession, purchase: Purchase, *, actor_ref: str | None) -> list[Coupon]:
    """
    Issue the coupon set of an APPROVED purchase inside the caller's
    transaction. Idempotent.
    """
    if purchase.status != PURCHASE_APPROVED:
        raise IntegrityViolation(
            "Coupons can only be issued for approved purchases",
            purchase_id=purchase.id,
            status=purchase.status,
        )

    coupons = await _issue_set(
        db,
        owner_type=OWNER_BUYER,
        purchase_id=int(purchase.id),
        sale_id=None,
        owner_key=buyer_owner_key(purchase.document_number),
        multiplier=int(purchase.coupon_multiplier),
        product_id=int(purchase.product_id),
        serial_number=purchase.serial_number,
        tier=purchase.tier,
        actor_ref=actor_ref,
    )
    if purchase.coupons_issued_at is None:
        purchase.coupons_issued_at = utcnow()
    return coupons


async def issue_for_sale(db: AsyncSession, sale: SellerSale, *, actor_ref: str | None) -> list[Coupon]:
    coupons = await _issue_set(
        db,
        owner_type=OWNER_SELLER,
        purchase_id=None,
        sale_id=int(sale.id),
        owner_key=seller_owner_key(sale.seller_id),
        multiplier=int(sale.coupon_multiplier),
        product_id=int(sale.product_id),
        serial_number=sale.serial_number,
        tier=sale.tier,
        actor_ref=actor_ref,
    )
    if sale.coupons_issued_at is None:
        sale.coupons_issued_at = utcnow()
    return coupons


async def reissue_for_purchase(db: AsyncSession, *, purchase_id: int, actor_ref: str | None) -> list[Coupon]:
    """Administrative retry of issuance; returns the existing set when complete."""
    stmt = (
        select(Purchase)
        .where(Purchase.id == int(purchase_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    purchase = (await db.execute(stmt)).scalar_one_or_none()
    if not purchase:
        raise NotFoundError("Purchase not found", purchase_id=purchase_id)

    try:
        coupons = await issue(db, purchase, actor_ref=actor_ref)
        await db.commit()
        return coupons
    except Exception:
        await db.rollback()
        raise


async def void_for_owner(
    db: AsyncSession,
    *,
    purchase_id: int | None = None,
    sale_id: int | None = None,
    actor_ref: str | None,
    reason: str,
) -> int:
    """
    VOID every live coupon of a purchase or sale and detach it from the
    owner row (which is about to be deleted). Runs in the caller's
    transaction. WINNER coupons block the cascade.
    """
    stmt = select(Coupon).where(_owner_filter(purchase_id, sale_id), Coupon.status != COUPON_VOID)
    coupons = (
        await db.execute(stmt.with_for_update().execution_options(populate_existing=True))
    ).scalars().all()

    winners = [c.code for c in coupons if c.status == COUPON_WINNER]
    if winners:
        raise ConflictError(
            "Owner holds winning coupons; disqualify the winner instead of deleting",
            purchase_id=purchase_id,
            sale_id=sale_id,
            winning_codes=winners,
        )

    now = utcnow()
    for c in coupons:
        c.status = COUPON_VOID
        c.voided_at = now
        c.owner_purchase_id = None
        c.owner_sale_id = None
        log_event(
            db,
            coupon_id=c.id,
            actor_ref=actor_ref,
            event_type="voided",
            meta={"reason": reason, "purchase_id": purchase_id, "sale_id": sale_id},
        )

    await db.flush()
    logger.info("coupons_voided", count=len(coupons), purchase_id=purchase_id, sale_id=sale_id)
    return len(coupons)


async def mark_winners(db: AsyncSession, *, coupon_ids: list[int], draw_id: int, actor_ref: str | None) -> None:
    """ACTIVE -> WINNER for exactly these coupons, or IntegrityViolation."""
    if not coupon_ids:
        return

    res = await db.execute(
        update(Coupon)
        .where(Coupon.id.in_(coupon_ids), Coupon.status == COUPON_ACTIVE)
        .values(status=COUPON_WINNER)
    )
    if res.rowcount != len(coupon_ids):
        logger.error("winner_flip_mismatch", draw_id=draw_id, expected=len(coupon_ids), flipped=res.rowcount)
        raise IntegrityViolation(
            "Some drawn coupons were no longer active",
            draw_id=draw_id,
            expected=len(coupon_ids),
            flipped=res.rowcount,
        )

    for cid in coupon_ids:
        log_event(db, coupon_id=cid, actor_ref=actor_ref, event_type="won", meta={"draw_id": draw_id})


async def get_coupon_by_code(db: AsyncSession, code: str) -> Coupon:
    res = await db.execute(select(Coupon).where(Coupon.code == (code or "").strip().upper()))
    coupon = res.scalar_one_or_none()
    if not coupon:
        raise NotFoundError("Coupon not found", code=code)
    return coupon


async def coupon_events(db: AsyncSession, coupon_id: int) -> list[CouponEvent]:
    res = await db.execute(
        select(CouponEvent)
        .where(CouponEvent.coupon_id == int(coupon_id))
        .order_by(CouponEvent.created_at.asc(), CouponEvent.id.asc())
    )
    return list(res.scalars().all())


async def list_coupons(
    db: AsyncSession,
    *,
    status: str | None,
    owner_type: str | None,
    serial_number: str | None,
    purchase_id: int | None,
    sale_id: int | None,
    limit: int,
    offset: int,
) -> list[Coupon]:
    stmt = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())

    if status:
        stmt = stmt.where(Coupon.status == status.strip().upper())
    if owner_type:
        stmt = stmt.where(Coupon.owner_type == owner_type.strip().upper())
    if serial_number:
        stmt = stmt.where(Coupon.serial_number == serial_number.strip().upper())
    if purchase_id is not None:
        stmt = stmt.where(Coupon.owner_purchase_id == int(purchase_id))
    if sale_id is not None:
        stmt = stmt.where(Coupon.owner_sale_id == int(sale_id))

    res = await db.execute(stmt.limit(int(limit)).offset(int(offset)))
    return list(res.scalars().all())


async def coupon_counts(db: AsyncSession) -> dict[str, int]:
    res = await db.execute(select(Coupon.status, func.count(Coupon.id)).group_by(Coupon.status))
    counts = {COUPON_ACTIVE: 0, COUPON_WINNER: 0, COUPON_VOID: 0}
    for status, n in res.all():
        counts[str(status)] = int(n)
    return counts
