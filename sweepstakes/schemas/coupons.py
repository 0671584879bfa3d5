# sweepstakes/schemas/coupons.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    owner_type: str
    owner_purchase_id: int | None
    owner_sale_id: int | None
    issue_seq: int
    product_id: int
    serial_number: str
    tier: str
    status: str
    created_at: datetime
    voided_at: datetime | None


class CouponEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_ref: str | None
    event_type: str
    meta: dict
    created_at: datetime


class CouponDetailOut(BaseModel):
    coupon: CouponOut
    events: list[CouponEventOut]


class CouponCountsOut(BaseModel):
    ACTIVE: int = 0
    WINNER: int = 0
    VOID: int = 0
