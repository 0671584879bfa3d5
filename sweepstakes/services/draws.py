# sweepstakes/services/draws.py
from __future__ import annotations

import secrets

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.config import settings
from sweepstakes.core.db import dialect_name, utcnow
from sweepstakes.core.errors import AlreadyExecuted, ConflictError, IntegrityViolation, NotFoundError, ValidationError
from sweepstakes.integrations.notifier_client import NotifierClient
from sweepstakes.models.coupon import COUPON_ACTIVE, Coupon
from sweepstakes.models.draw import (
    DRAW_EXECUTED,
    DRAW_PENDING,
    WINNER_FINALIST,
    WINNER_PRESELECTED,
    DrawResult,
    DrawWinner,
    WinnerDisqualification,
)
from sweepstakes.models.purchase import Purchase
from sweepstakes.models.seller import Seller, SellerSale
from sweepstakes.models.serial import OWNER_BUYER
from sweepstakes.services import coupons as coupon_service
from sweepstakes.services import notifications

logger = structlog.get_logger(__name__)

_rng = secrets.SystemRandom()


def _check_counts(preselected_count: int, finalists_count: int) -> None:
    if preselected_count < 1 or finalists_count < 1:
        raise ValidationError("Draw sizes must be at least 1")
    if finalists_count > preselected_count:
        raise ValidationError(
            "Finalists cannot outnumber preselected winners",
            preselected_count=preselected_count,
            finalists_count=finalists_count,
        )
    if preselected_count > settings.DRAW_MAX_PRESELECTED:
        raise ValidationError(
            f"At most {settings.DRAW_MAX_PRESELECTED} preselected winners per draw",
            preselected_count=preselected_count,
        )


async def _executed_draw(db: AsyncSession) -> DrawResult | None:
    res = await db.execute(select(DrawResult).where(DrawResult.status == DRAW_EXECUTED).limit(1))
    return res.scalar_one_or_none()


async def _acquire_draw_lock(db: AsyncSession) -> None:
    # held until commit/rollback; other backends rely on executed_slot alone
    if dialect_name(db) == "postgresql":
        await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": settings.DRAW_LOCK_KEY})


async def create_draw(
    db: AsyncSession,
    *,
    preselected_count: int,
    finalists_count: int,
    requested_by: str,
) -> DrawResult:
    _check_counts(preselected_count, finalists_count)

    done = await _executed_draw(db)
    if done is not None:
        raise AlreadyExecuted("The draw has already been executed", draw_id=done.id)

    d = DrawResult(
        status=DRAW_PENDING,
        requested_preselected_count=int(preselected_count),
        requested_finalists_count=int(finalists_count),
        requested_by=requested_by,
        is_degraded=False,
    )
    try:
        db.add(d)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "draw_created",
        draw_id=d.id,
        preselected_count=preselected_count,
        finalists_count=finalists_count,
        requested_by=requested_by,
    )
    return d


async def _owner_snapshots(db: AsyncSession, picked: list[Coupon]) -> dict[int, dict]:
    """coupon_id -> {owner_type, owner_name, owner_email, owner_phone}"""
    purchase_ids = {c.owner_purchase_id for c in picked if c.owner_purchase_id is not None}
    sale_ids = {c.owner_sale_id for c in picked if c.owner_sale_id is not None}

    purchases: dict[int, Purchase] = {}
    if purchase_ids:
        res = await db.execute(select(Purchase).where(Purchase.id.in_(purchase_ids)))
        purchases = {p.id: p for p in res.scalars().all()}

    sellers_by_sale: dict[int, Seller] = {}
    if sale_ids:
        res = await db.execute(
            select(SellerSale.id, Seller).join(Seller, Seller.id == SellerSale.seller_id).where(SellerSale.id.in_(sale_ids))
        )
        sellers_by_sale = {sale_id: seller for sale_id, seller in res.all()}

    out: dict[int, dict] = {}
    for c in picked:
        if c.owner_type == OWNER_BUYER:
            p = purchases.get(c.owner_purchase_id)
            if p is None:
                raise IntegrityViolation("Drawn coupon has no owning purchase", coupon_id=c.id)
            out[c.id] = {"owner_type": c.owner_type, "owner_name": p.full_name, "owner_email": p.email, "owner_phone": p.phone}
        else:
            s = sellers_by_sale.get(c.owner_sale_id)
            if s is None:
                raise IntegrityViolation("Drawn coupon has no owning sale", coupon_id=c.id)
            out[c.id] = {"owner_type": c.owner_type, "owner_name": s.full_name, "owner_email": s.email, "owner_phone": s.phone}
    return out


async def execute_draw(
    db: AsyncSession,
    *,
    draw_id: int,
    executed_by: str,
    notifier: NotifierClient | None = None,
) -> DrawResult:
    """
    Snapshot the ACTIVE pool, sample preselected winners and then the
    finalists out of them, and persist everything in one commit.

    At most one draw ever executes: the advisory lock serializes executors
    on Postgres and the unique executed_slot rejects a second one anywhere.
    """
    try:
        await _acquire_draw_lock(db)

        stmt = select(DrawResult).where(DrawResult.id == int(draw_id)).with_for_update()
        draw = (await db.execute(stmt)).scalar_one_or_none()
        if not draw:
            raise NotFoundError("Draw not found", draw_id=draw_id)
        if draw.status == DRAW_EXECUTED:
            raise AlreadyExecuted("The draw has already been executed", draw_id=draw.id)

        done = await _executed_draw(db)
        if done is not None:
            raise AlreadyExecuted("Another draw has already been executed", draw_id=draw.id, executed_draw_id=done.id)

        pool = list(
            (
                await db.execute(
                    select(Coupon).where(Coupon.status == COUPON_ACTIVE).order_by(Coupon.id.asc()).with_for_update()
                )
            ).scalars().all()
        )
        if not pool:
            raise ValidationError("There are no active coupons to draw from", draw_id=draw.id)

        total_tickets = len(pool)
        total_participants = len({c.owner_key for c in pool})

        pre_n = min(int(draw.requested_preselected_count), total_tickets)
        fin_n = min(int(draw.requested_finalists_count), pre_n)

        degraded_reason = None
        if pre_n < draw.requested_preselected_count or fin_n < draw.requested_finalists_count:
            degraded_reason = (
                f"Pool of {total_tickets} active coupons is smaller than requested "
                f"(preselected {draw.requested_preselected_count}, finalists {draw.requested_finalists_count})"
            )
            logger.warning(
                "draw_degraded",
                draw_id=draw.id,
                total_tickets=total_tickets,
                preselected_count=pre_n,
                finalists_count=fin_n,
            )

        preselected = _rng.sample(pool, pre_n)
        finalists = _rng.sample(preselected, fin_n)

        await coupon_service.mark_winners(
            db,
            coupon_ids=[c.id for c in preselected],
            draw_id=draw.id,
            actor_ref=executed_by,
        )

        owners = await _owner_snapshots(db, preselected)
        winners: list[DrawWinner] = []
        for winner_type, picked in ((WINNER_PRESELECTED, preselected), (WINNER_FINALIST, finalists)):
            for position, c in enumerate(picked, start=1):
                w = DrawWinner(
                    draw_id=draw.id,
                    coupon_id=c.id,
                    coupon_code=c.code,
                    position=position,
                    winner_type=winner_type,
                    is_notified=False,
                    **owners[c.id],
                )
                db.add(w)
                winners.append(w)

        draw.status = DRAW_EXECUTED
        draw.executed_slot = 1
        draw.executed_by = executed_by
        draw.executed_at = utcnow()
        draw.preselected_count = pre_n
        draw.finalists_count = fin_n
        draw.total_tickets = total_tickets
        draw.total_participants = total_participants
        draw.is_degraded = degraded_reason is not None
        draw.degraded_reason = degraded_reason

        try:
            await db.flush()
        except IntegrityError as e:
            raise AlreadyExecuted("Another draw has already been executed", draw_id=draw.id) from e

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "draw_executed",
        draw_id=draw.id,
        total_tickets=total_tickets,
        total_participants=total_participants,
        preselected_count=pre_n,
        finalists_count=fin_n,
        is_degraded=draw.is_degraded,
        executed_by=executed_by,
    )

    # one message per coupon, announcing its highest tier
    finalist_ids = {c.id for c in finalists}
    to_notify = [
        w for w in winners
        if w.winner_type == WINNER_FINALIST or w.coupon_id not in finalist_ids
    ]
    await notifications.notify_draw_winners(db, to_notify, notifier)
    return draw


async def _discard_pending(db: AsyncSession, draw_id: int) -> None:
    try:
        stmt = (
            select(DrawResult)
            .where(DrawResult.id == draw_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        d = (await db.execute(stmt)).scalar_one_or_none()
        if d is not None and d.status == DRAW_PENDING:
            await db.delete(d)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("draw_discard_failed", draw_id=draw_id)


async def run_draw(
    db: AsyncSession,
    *,
    preselected_count: int,
    finalists_count: int,
    actor_ref: str,
    notifier: NotifierClient | None = None,
) -> DrawResult:
    """Create and execute in one call. A draw that fails to execute is not kept."""
    d = await create_draw(
        db,
        preselected_count=preselected_count,
        finalists_count=finalists_count,
        requested_by=actor_ref,
    )
    draw_id = d.id
    try:
        return await execute_draw(db, draw_id=draw_id, executed_by=actor_ref, notifier=notifier)
    except Exception:
        await _discard_pending(db, draw_id)
        raise


async def get_draw(db: AsyncSession, draw_id: int) -> DrawResult:
    d = await db.get(DrawResult, int(draw_id))
    if not d:
        raise NotFoundError("Draw not found", draw_id=draw_id)
    return d


async def list_draws(db: AsyncSession, *, status: str | None = None) -> list[DrawResult]:
    stmt = select(DrawResult).order_by(DrawResult.created_at.desc(), DrawResult.id.desc())
    if status:
        stmt = stmt.where(DrawResult.status == status.strip().upper())
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def list_winners(
    db: AsyncSession,
    *,
    draw_id: int,
    winner_type: str | None = None,
) -> list[tuple[DrawWinner, WinnerDisqualification | None]]:
    await get_draw(db, draw_id)

    stmt = (
        select(DrawWinner, WinnerDisqualification)
        .outerjoin(WinnerDisqualification, WinnerDisqualification.winner_id == DrawWinner.id)
        .where(DrawWinner.draw_id == int(draw_id))
        .order_by(DrawWinner.winner_type.asc(), DrawWinner.position.asc())
    )
    if winner_type:
        stmt = stmt.where(DrawWinner.winner_type == winner_type.strip().upper())
    res = await db.execute(stmt)
    return [(w, dq) for w, dq in res.all()]


async def _get_winner(db: AsyncSession, draw_id: int, winner_id: int) -> DrawWinner:
    res = await db.execute(
        select(DrawWinner).where(DrawWinner.id == int(winner_id), DrawWinner.draw_id == int(draw_id))
    )
    w = res.scalar_one_or_none()
    if not w:
        raise NotFoundError("Winner not found", draw_id=draw_id, winner_id=winner_id)
    return w


async def mark_winner_notified(db: AsyncSession, *, draw_id: int, winner_id: int) -> DrawWinner:
    w = await _get_winner(db, draw_id, winner_id)
    try:
        w.is_notified = True
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("winner_marked_notified", draw_id=draw_id, winner_id=winner_id)
    return w


async def disqualify_winner(
    db: AsyncSession,
    *,
    draw_id: int,
    winner_id: int,
    reason: str,
    actor_ref: str,
) -> WinnerDisqualification:
    """Append-only: the winner row, its coupon and the draw keep their state."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A disqualification reason is required", winner_id=winner_id)

    w = await _get_winner(db, draw_id, winner_id)

    dq = WinnerDisqualification(winner_id=w.id, reason=reason, disqualified_by=actor_ref)
    try:
        db.add(dq)
        await db.flush()
        coupon_service.log_event(
            db,
            coupon_id=w.coupon_id,
            actor_ref=actor_ref,
            event_type="disqualified",
            meta={"draw_id": int(draw_id), "winner_id": w.id, "reason": reason},
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Winner is already disqualified", draw_id=draw_id, winner_id=winner_id)
    except Exception:
        await db.rollback()
        raise

    logger.info("winner_disqualified", draw_id=draw_id, winner_id=w.id, actor=actor_ref)
    return dq
