from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sweepstakes.core.db import Base, BigIntPK, utcnow

CHANNEL_EMAIL = "EMAIL"
CHANNEL_WHATSAPP = "WHATSAPP"

NOTIFY_PENDING = "PENDING"
NOTIFY_SENT = "SENT"
NOTIFY_FAILED = "FAILED"


class NotificationLog(Base):
    __tablename__ = "notification_log"
    __table_args__ = (
        CheckConstraint("channel IN ('EMAIL','WHATSAPP')", name="notification_log_channel_check"),
        CheckConstraint("status IN ('PENDING','SENT','FAILED')", name="notification_log_status_check"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    template_key: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=NOTIFY_PENDING, index=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # plain references: the log outlives deleted purchases/sales
    related_purchase_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    related_sale_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    related_winner_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("draw_winners.id", ondelete="SET NULL"), nullable=True
    )

    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
