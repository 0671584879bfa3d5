# sweepstakes/models/product.py
from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Text, func

from sweepstakes.core.db import Base, BigIntPK, utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("coupon_multiplier >= 1", name="products_coupon_multiplier_check"),
        CheckConstraint("points_value >= 0", name="products_points_value_check"),
    )

    id = Column(BigIntPK, primary_key=True)

    model_name = Column(Text, nullable=False, unique=True)
    tier = Column(Text, nullable=False)

    # coupons granted per approved registration (serials may override)
    coupon_multiplier = Column(Integer, nullable=False, default=1)
    # seller points per registered sale
    points_value = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
