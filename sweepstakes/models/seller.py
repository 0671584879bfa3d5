from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sweepstakes.core.db import Base, BigIntPK, utcnow


class Seller(Base):
    __tablename__ = "sellers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    store_name: Mapped[str] = mapped_column(String(255), nullable=False)
    store_city: Mapped[str] = mapped_column(String(120), nullable=False)
    store_department: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    # sha256 hex of the token handed out once at creation
    access_token_hash: Mapped[str] = mapped_column(String(72), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class SellerSale(Base):
    __tablename__ = "seller_sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    seller_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("sellers.id"), nullable=False, index=True)
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("products.id"), nullable=False)

    invoice_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)

    tier: Mapped[str] = mapped_column(Text, nullable=False)
    coupon_multiplier: Mapped[int] = mapped_column(Integer, nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    coupons_issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
