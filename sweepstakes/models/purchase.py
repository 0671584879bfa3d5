from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sweepstakes.core.db import Base, BigIntPK, utcnow

PURCHASE_PENDING = "PENDING"
PURCHASE_APPROVED = "APPROVED"
PURCHASE_REJECTED = "REJECTED"


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING','APPROVED','REJECTED')",
            name="purchases_status_check",
        ),
        # ids of deleted purchases are never handed out again
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    # Owner identity
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    document_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    department: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Purchase facts
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("products.id"), nullable=False)

    # Snapshot of the serial at submission time
    tier: Mapped[str] = mapped_column(Text, nullable=False)
    coupon_multiplier: Mapped[int] = mapped_column(Integer, nullable=False)

    # Opaque storage references (upload handled elsewhere)
    document_front_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_back_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    terms_accepted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PURCHASE_PENDING)

    # Advisory result of the external document check
    validation_is_valid: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    validation_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    reviewer_ref: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    coupons_issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
