# sweepstakes/schemas/serials.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SerialCreate(BaseModel):
    serial_number: str = Field(min_length=1, max_length=64)
    product_id: int
    tier: str | None = None
    coupon_multiplier: int | None = Field(default=None, ge=1)


class SerialImportRow(BaseModel):
    serial_number: str | None = None
    product_id: int | None = None
    tier: str | None = None
    # range checked per row so one bad value doesn't reject the batch
    coupon_multiplier: int | None = None


class SerialImportRequest(BaseModel):
    rows: list[SerialImportRow] = Field(min_length=1, max_length=20000)


class ImportRowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    row: int
    serial_number: str
    ok: bool
    error_code: str | None = None
    error: str | None = None


class ImportReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created: int
    failed: int
    rows: list[ImportRowOut]


class SerialCheckOut(BaseModel):
    """Public availability check. No owner references."""

    model_config = ConfigDict(from_attributes=True)

    serial_number: str
    owner_class: str
    status: str
    tier: str
    multiplier: int
    product_name: str


class SerialClaimOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    owner_class: str
    status: str
    owner_ref: int | None
    claimed_at: datetime | None


class SerialOut(BaseModel):
    id: int
    serial_number: str
    product_id: int
    tier: str
    coupon_multiplier: int
    block_reason: str | None
    created_at: datetime
    claims: list[SerialClaimOut]


class SerialListOut(BaseModel):
    total: int
    items: list[SerialOut]


class SerialBlockRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
