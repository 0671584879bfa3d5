# sweepstakes/schemas/sellers.py
from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from sweepstakes.schemas.coupons import CouponOut


class SellerCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    store_name: str = Field(min_length=1, max_length=255)
    store_city: str = Field(min_length=1, max_length=120)
    store_department: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)


class SellerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    email: str | None
    phone: str | None
    store_name: str
    store_city: str
    store_department: str | None
    is_active: bool
    total_sales: int
    total_points: int
    created_at: datetime


class SellerCreatedOut(BaseModel):
    seller: SellerOut
    # shown once; only its hash is stored
    access_token: str


class SellerActiveUpdate(BaseModel):
    is_active: bool


class SaleCreate(BaseModel):
    serial_number: str = Field(min_length=1, max_length=64)
    client_name: str = Field(min_length=1, max_length=255)
    client_phone: str | None = Field(default=None, max_length=32)
    invoice_number: str | None = Field(default=None, max_length=64)
    sale_date: date


class SaleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    seller_id: int
    serial_number: str
    product_id: int
    invoice_number: str | None
    client_name: str
    client_phone: str | None
    sale_date: date
    tier: str
    coupon_multiplier: int
    points_earned: int
    coupons_issued_at: datetime | None
    created_at: datetime


class SaleCreatedOut(BaseModel):
    sale: SaleOut
    coupons: list[CouponOut]


class SaleListOut(BaseModel):
    total: int
    items: list[SaleOut]


class SaleDeletedOut(BaseModel):
    sale_id: int
    serial_number: str
    coupons_voided: int
