from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.models.coupon import COUPON_ACTIVE, Coupon
from sweepstakes.models.purchase import PURCHASE_APPROVED, PURCHASE_PENDING, PURCHASE_REJECTED, Purchase
from sweepstakes.models.seller import Seller
from sweepstakes.services import coupons as coupon_service
from sweepstakes.services import serials


async def campaign_stats(db: AsyncSession) -> dict:
    """Dashboard numbers. Read without locks; may lag concurrent writes."""
    res = await db.execute(select(Purchase.status, func.count(Purchase.id)).group_by(Purchase.status))
    purchases = {PURCHASE_PENDING: 0, PURCHASE_APPROVED: 0, PURCHASE_REJECTED: 0}
    for status, n in res.all():
        purchases[str(status)] = int(n)

    participants = (
        await db.execute(select(func.count(func.distinct(Coupon.owner_key))).where(Coupon.status == COUPON_ACTIVE))
    ).scalar_one()

    sellers = (await db.execute(select(func.count(Seller.id)).where(Seller.is_active.is_(True)))).scalar_one()

    coupons = await coupon_service.coupon_counts(db)

    return {
        "purchases": purchases,
        "coupons": coupons,
        "active_tickets": coupons.get(COUPON_ACTIVE, 0),
        "active_participants": int(participants),
        "active_sellers": int(sellers),
        "serials": await serials.serial_stats(db),
    }
