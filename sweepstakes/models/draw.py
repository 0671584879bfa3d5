from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
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

DRAW_PENDING = "PENDING"
DRAW_EXECUTED = "EXECUTED"

WINNER_PRESELECTED = "PRESELECTED"
WINNER_FINALIST = "FINALIST"


class DrawResult(Base):
    __tablename__ = "draw_results"
    __table_args__ = (
        CheckConstraint("status IN ('PENDING','EXECUTED')", name="draw_results_status_check"),
        CheckConstraint("executed_slot IS NULL OR executed_slot = 1", name="draw_results_executed_slot_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=DRAW_PENDING)

    requested_preselected_count: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_finalists_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Actual tier sizes (after clamping to the pool)
    preselected_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    finalists_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    total_tickets: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_participants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    degraded_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    requested_by: Mapped[str] = mapped_column(String(120), nullable=False)
    executed_by: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # NULL while pending, 1 once executed; UNIQUE => at most one executed draw
    executed_slot: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class DrawWinner(Base):
    __tablename__ = "draw_winners"
    __table_args__ = (
        CheckConstraint("winner_type IN ('PRESELECTED','FINALIST')", name="draw_winners_type_check"),
        CheckConstraint("position >= 1", name="draw_winners_position_check"),
        UniqueConstraint("draw_id", "winner_type", "position", name="draw_winners_position_uq"),
        UniqueConstraint("draw_id", "winner_type", "coupon_id", name="draw_winners_coupon_uq"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    draw_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("draw_results.id", ondelete="CASCADE"), nullable=False, index=True
    )
    coupon_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("coupons.id"), nullable=False, index=True)
    coupon_code: Mapped[str] = mapped_column(String(32), nullable=False)

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_type: Mapped[str] = mapped_column(String(16), nullable=False)

    # Owner snapshot at draw time
    owner_type: Mapped[str] = mapped_column(String(8), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    is_notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class WinnerDisqualification(Base):
    """Appended after the fact; the draw and its winner rows stay untouched."""

    __tablename__ = "winner_disqualifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    winner_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("draw_winners.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    disqualified_by: Mapped[str] = mapped_column(String(120), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
