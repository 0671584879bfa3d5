# sweepstakes/schemas/purchases.py
from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from sweepstakes.schemas.coupons import CouponOut


class PurchaseSubmit(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    document_number: str = Field(min_length=1, max_length=64)
    email: str = Field(min_length=3, max_length=255)
    phone: str = Field(min_length=1, max_length=32)
    city: str = Field(min_length=1, max_length=120)
    department: str | None = Field(default=None, max_length=120)
    birth_date: date

    invoice_number: str = Field(min_length=1, max_length=64)
    purchase_date: date
    serial_number: str = Field(min_length=1, max_length=64)

    document_front_ref: str | None = None
    document_back_ref: str | None = None
    invoice_ref: str | None = None

    terms_accepted: bool


class PurchaseReceipt(BaseModel):
    """What the customer sees after submitting."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    serial_number: str
    tier: str
    coupon_multiplier: int
    created_at: datetime


class PurchaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str

    full_name: str
    document_number: str
    email: str
    phone: str
    city: str
    department: str | None
    birth_date: date

    invoice_number: str
    purchase_date: date
    serial_number: str
    product_id: int
    tier: str
    coupon_multiplier: int

    document_front_ref: str | None
    document_back_ref: str | None
    invoice_ref: str | None

    validation_is_valid: bool | None
    validation_notes: str | None
    validated_at: datetime | None

    reviewer_ref: str | None
    review_notes: str | None
    reviewed_at: datetime | None
    approved_at: datetime | None
    coupons_issued_at: datetime | None

    created_at: datetime
    updated_at: datetime


class PurchaseListOut(BaseModel):
    total: int
    items: list[PurchaseOut]


class ApproveRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class ApprovalOut(BaseModel):
    purchase: PurchaseOut
    coupons: list[CouponOut]


class ContactUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    city: str | None = Field(default=None, min_length=1, max_length=120)
    department: str | None = Field(default=None, max_length=120)


class ValidationAttach(BaseModel):
    is_valid: bool | None
    notes: str | None = Field(default=None, max_length=2000)


class PurchaseDeletedOut(BaseModel):
    purchase_id: int
    serial_number: str
    coupons_voided: int
