# sweepstakes/schemas/notifications.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    channel: str
    recipient: str
    subject: str | None
    content: str
    template_key: str
    status: str
    retry_count: int
    error_message: str | None
    related_purchase_id: int | None
    related_sale_id: int | None
    related_winner_id: int | None
    sent_at: datetime | None
    created_at: datetime


class RetryRequest(BaseModel):
    limit: int = Field(50, ge=1, le=500)
