# sweepstakes/models/coupon_event.py
from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, Text, func

from sweepstakes.core.db import Base, BigIntPK, JSONType, utcnow


class CouponEvent(Base):
    __tablename__ = "coupon_events"

    id = Column(BigIntPK, primary_key=True, index=True)
    coupon_id = Column(BigInteger, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)

    actor_ref = Column(String(120), nullable=True)

    event_type = Column(Text, nullable=False)  # issued, won, voided, disqualified
    meta = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
