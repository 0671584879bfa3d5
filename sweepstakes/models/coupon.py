# sweepstakes/models/coupon.py
from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from sweepstakes.core.db import Base, BigIntPK, utcnow

COUPON_ACTIVE = "ACTIVE"
COUPON_WINNER = "WINNER"
COUPON_VOID = "VOID"


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("status IN ('ACTIVE','WINNER','VOID')", name="coupons_status_check"),
        CheckConstraint("owner_type IN ('BUYER','SELLER')", name="coupons_owner_type_check"),
        CheckConstraint("issue_seq >= 1", name="coupons_issue_seq_check"),
        # one coupon per (owner, slot): a retried issuance cannot add rows
        UniqueConstraint("owner_purchase_id", "issue_seq", name="coupons_purchase_seq_uq"),
        UniqueConstraint("owner_sale_id", "issue_seq", name="coupons_sale_seq_uq"),
    )

    id = Column(BigIntPK, primary_key=True)
    code = Column(String(32), nullable=False, unique=True)

    owner_type = Column(String(8), nullable=False)

    # exactly one of these is set at issuance; SET NULL only after an admin delete voided the coupon
    owner_purchase_id = Column(BigInteger, ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True, index=True)
    owner_sale_id = Column(BigInteger, ForeignKey("seller_sales.id", ondelete="SET NULL"), nullable=True, index=True)

    # BUYER:<document_number> or SELLER:<seller_id>
    owner_key = Column(String(96), nullable=False)

    issue_seq = Column(Integer, nullable=False)

    product_id = Column(BigInteger, ForeignKey("products.id"), nullable=False)
    serial_number = Column(String(64), nullable=False, index=True)
    tier = Column(Text, nullable=False)

    status = Column(String(16), nullable=False, default=COUPON_ACTIVE, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    voided_at = Column(DateTime(timezone=True), nullable=True)
