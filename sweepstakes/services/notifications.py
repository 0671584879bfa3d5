"""
Notification log + best-effort dispatch.

Everything here runs after the business transaction has committed. A
delivery failure is recorded on the log row (FAILED, error_message,
retry_count) and never reaches the caller.
"""
from __future__ import annotations

from typing import Callable

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.config import settings
from sweepstakes.core.db import utcnow
from sweepstakes.integrations.notifier_client import NotifierClient
from sweepstakes.models.coupon import Coupon
from sweepstakes.models.draw import DrawWinner
from sweepstakes.models.notification import (
    CHANNEL_EMAIL,
    CHANNEL_WHATSAPP,
    NOTIFY_FAILED,
    NOTIFY_SENT,
    NotificationLog,
)
from sweepstakes.models.purchase import Purchase

logger = structlog.get_logger(__name__)


def _approved_logs(purchase: Purchase, coupons: list[Coupon]) -> list[NotificationLog]:
    codes = ", ".join(c.code for c in coupons)
    n = len(coupons)
    logs = [
        NotificationLog(
            channel=CHANNEL_EMAIL,
            recipient=purchase.email,
            subject="Your sweepstakes coupons",
            content=(
                f"Congratulations {purchase.full_name}! Your purchase was approved. "
                f"You received {n} coupon(s) for the draw: {codes}. Good luck!"
            ),
            template_key="purchase_approved",
            related_purchase_id=purchase.id,
        )
    ]
    if purchase.phone:
        logs.append(
            NotificationLog(
                channel=CHANNEL_WHATSAPP,
                recipient=purchase.phone,
                content=f"Congratulations {purchase.full_name}! Your {n} coupon(s): {codes}. Good luck in the draw!",
                template_key="purchase_approved",
                related_purchase_id=purchase.id,
            )
        )
    return logs


def _rejected_logs(purchase: Purchase) -> list[NotificationLog]:
    return [
        NotificationLog(
            channel=CHANNEL_EMAIL,
            recipient=purchase.email,
            subject="Your registration status",
            content=(
                f"Hello {purchase.full_name}, your registration could not be approved. "
                f"Reason: {purchase.review_notes}."
            ),
            template_key="purchase_rejected",
            related_purchase_id=purchase.id,
        )
    ]


def _winner_logs(winners: list[DrawWinner]) -> list[NotificationLog]:
    logs: list[NotificationLog] = []
    for w in winners:
        text = (
            f"Congratulations {w.owner_name}! Coupon {w.coupon_code} was drawn "
            f"as {w.winner_type.lower()} #{w.position}."
        )
        if w.owner_email:
            logs.append(
                NotificationLog(
                    channel=CHANNEL_EMAIL,
                    recipient=w.owner_email,
                    subject="You were drawn!",
                    content=text,
                    template_key=f"draw_{w.winner_type.lower()}",
                    related_winner_id=w.id,
                )
            )
        if w.owner_phone:
            logs.append(
                NotificationLog(
                    channel=CHANNEL_WHATSAPP,
                    recipient=w.owner_phone,
                    content=text,
                    template_key=f"draw_{w.winner_type.lower()}",
                    related_winner_id=w.id,
                )
            )
    return logs


async def _dispatch(db: AsyncSession, logs: list[NotificationLog], notifier: NotifierClient) -> None:
    if not notifier.enabled:
        # stays PENDING for an external sender
        return

    notified_winners: set[int] = set()
    for log in logs:
        try:
            await notifier.send(
                channel=log.channel,
                recipient=log.recipient,
                subject=log.subject,
                content=log.content,
                template_key=log.template_key,
                reference=f"notification:{log.id}",
            )
        except Exception as e:
            log.status = NOTIFY_FAILED
            log.retry_count = int(log.retry_count or 0) + 1
            log.error_message = (str(e) or type(e).__name__)[:500]
            logger.warning("notification_failed", notification_id=log.id, channel=log.channel, error=str(e))
            continue

        log.status = NOTIFY_SENT
        log.sent_at = utcnow()
        log.error_message = None
        if log.related_winner_id is not None:
            notified_winners.add(int(log.related_winner_id))

    if notified_winners:
        await db.execute(
            update(DrawWinner)
            .where(DrawWinner.id.in_(sorted(notified_winners)))
            .values(is_notified=True)
        )
    await db.commit()


async def _record_and_dispatch(
    db: AsyncSession,
    build: Callable[[], list[NotificationLog]],
    notifier: NotifierClient | None,
    *,
    notify_event: str,
) -> list[NotificationLog]:
    try:
        logs = build()
        if not logs:
            return []
        db.add_all(logs)
        await db.commit()
        await _dispatch(db, logs, notifier or NotifierClient())
    except Exception:
        # business change is already committed
        await db.rollback()
        logger.exception("notification_dispatch_failed", notify_event=notify_event)
        return []

    logger.info("notifications_recorded", notify_event=notify_event, count=len(logs))
    return logs


async def notify_purchase_approved(
    db: AsyncSession, purchase: Purchase, coupons: list[Coupon], notifier: NotifierClient | None = None
) -> list[NotificationLog]:
    return await _record_and_dispatch(
        db, lambda: _approved_logs(purchase, coupons), notifier, notify_event="purchase_approved"
    )


async def notify_purchase_rejected(
    db: AsyncSession, purchase: Purchase, notifier: NotifierClient | None = None
) -> list[NotificationLog]:
    return await _record_and_dispatch(db, lambda: _rejected_logs(purchase), notifier, notify_event="purchase_rejected")


async def notify_draw_winners(
    db: AsyncSession, winners: list[DrawWinner], notifier: NotifierClient | None = None
) -> list[NotificationLog]:
    return await _record_and_dispatch(db, lambda: _winner_logs(winners), notifier, notify_event="draw_executed")


async def retry_failed(db: AsyncSession, *, limit: int, notifier: NotifierClient | None = None) -> list[NotificationLog]:
    res = await db.execute(
        select(NotificationLog)
        .where(
            NotificationLog.status == NOTIFY_FAILED,
            NotificationLog.retry_count < settings.NOTIFY_MAX_RETRIES,
        )
        .order_by(NotificationLog.created_at.asc(), NotificationLog.id.asc())
        .limit(int(limit))
    )
    logs = list(res.scalars().all())
    if logs:
        await _dispatch(db, logs, notifier or NotifierClient())
    return logs


async def list_notifications(
    db: AsyncSession,
    *,
    status: str | None,
    purchase_id: int | None,
    limit: int,
    offset: int,
) -> list[NotificationLog]:
    stmt = select(NotificationLog).order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
    if status:
        stmt = stmt.where(NotificationLog.status == status.strip().upper())
    if purchase_id is not None:
        stmt = stmt.where(NotificationLog.related_purchase_id == int(purchase_id))
    res = await db.execute(stmt.limit(int(limit)).offset(int(offset)))
    return list(res.scalars().all())

