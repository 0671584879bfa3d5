# sweepstakes/schemas/products.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ProductCreate(BaseModel):
    model_name: str = Field(min_length=1, max_length=120)
    tier: str = Field(min_length=1, max_length=32)
    coupon_multiplier: int = Field(1, ge=1, le=100)
    points_value: int = Field(0, ge=0)


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    model_name: str
    tier: str
    coupon_multiplier: int
    points_value: int
    is_active: bool
    created_at: datetime
