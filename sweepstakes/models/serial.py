# sweepstakes/models/serial.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from sweepstakes.core.db import Base, BigIntPK, utcnow

OWNER_BUYER = "BUYER"
OWNER_SELLER = "SELLER"
OWNER_CLASSES = (OWNER_BUYER, OWNER_SELLER)

CLAIM_AVAILABLE = "AVAILABLE"
CLAIM_USED = "USED"
CLAIM_BLOCKED = "BLOCKED"


class SerialEntry(Base):
    __tablename__ = "serial_registry"
    __table_args__ = (
        CheckConstraint("coupon_multiplier >= 1", name="serial_registry_multiplier_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    # stored trimmed + uppercased
    serial_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("products.id"), nullable=False)
    tier: Mapped[str] = mapped_column(Text, nullable=False)
    coupon_multiplier: Mapped[int] = mapped_column(Integer, nullable=False)

    block_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class SerialClaim(Base):
    """
    One consumption track of a serial. Every SerialEntry owns exactly two
    claims (BUYER and SELLER) so the tracks never share a status column.
    """

    __tablename__ = "serial_claims"
    __table_args__ = (
        UniqueConstraint("serial_id", "owner_class", name="serial_claims_serial_owner_uq"),
        CheckConstraint("owner_class IN ('BUYER','SELLER')", name="serial_claims_owner_class_check"),
        CheckConstraint(
            "status IN ('AVAILABLE','USED','BLOCKED')",
            name="serial_claims_status_check",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    serial_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("serial_registry.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_class: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=CLAIM_AVAILABLE)

    # purchase id (BUYER) or sale id (SELLER)
    owner_ref: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
