# sweepstakes/schemas/draws.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DrawCreate(BaseModel):
    preselected_count: int = Field(ge=1)
    finalists_count: int = Field(ge=1)


class DrawOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    requested_preselected_count: int
    requested_finalists_count: int
    preselected_count: int | None
    finalists_count: int | None
    total_tickets: int | None
    total_participants: int | None
    is_degraded: bool
    degraded_reason: str | None
    requested_by: str
    executed_by: str | None
    executed_at: datetime | None
    created_at: datetime


class WinnerPublicOut(BaseModel):
    winner_type: str
    position: int
    coupon_code: str
    owner_name: str
    disqualified: bool


class WinnerOut(BaseModel):
    id: int
    draw_id: int
    coupon_id: int
    coupon_code: str
    winner_type: str
    position: int
    owner_type: str
    owner_name: str
    owner_email: str | None
    owner_phone: str | None
    is_notified: bool
    created_at: datetime

    disqualified: bool = False
    disqualification_reason: str | None = None
    disqualified_by: str | None = None
    disqualified_at: datetime | None = None


class DisqualifyRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class DisqualificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    winner_id: int
    reason: str
    disqualified_by: str
    created_at: datetime
