# sweepstakes/services/purchases.py
from __future__ import annotations

import re
from datetime import date

import httpx
import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.config import settings
from sweepstakes.core.db import utcnow
from sweepstakes.core.errors import AlreadyUsed, NotFoundError, ValidationError
from sweepstakes.integrations.document_validation_client import (
    DocumentValidationClient,
    DocumentValidationError,
)
from sweepstakes.models.purchase import PURCHASE_APPROVED, PURCHASE_PENDING, Purchase
from sweepstakes.models.serial import CLAIM_USED, OWNER_BUYER
from sweepstakes.services import approvals, serials

logger = structlog.get_logger(__name__)

AUTO_VALIDATION_REVIEWER = "system:auto-validation"

CONTACT_FIELDS = ("full_name", "email", "phone", "city", "department")

_PHONE_STRIP = re.compile(r"[\s\-().]")
_PHONE_OK = re.compile(r"^\+?\d{7,15}$")
_EMAIL_OK = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def age_on(birth_date: date, today: date) -> int:
    """Completed years: the birthday itself counts, the day before does not."""
    had_birthday = (today.month, today.day) >= (birth_date.month, birth_date.day)
    return today.year - birth_date.year - (0 if had_birthday else 1)


def normalize_phone(phone: str | None) -> str:
    cleaned = _PHONE_STRIP.sub("", phone or "")
    if not _PHONE_OK.match(cleaned):
        raise ValidationError("Phone number must contain 7 to 15 digits")
    return cleaned


def _normalize_email(email: str | None) -> str:
    e = (email or "").strip().lower()
    if not _EMAIL_OK.match(e):
        raise ValidationError("Email address is not valid")
    return e


def _required(value: str | None, label: str) -> str:
    v = (value or "").strip()
    if not v:
        raise ValidationError(f"{label} is required")
    return v


async def _replay_target(db: AsyncSession, purchase_id: int | None, document_number: str) -> Purchase | None:
    """A live purchase by the same person on this serial means the client is retrying."""
    if purchase_id is None:
        return None
    p = await db.get(Purchase, int(purchase_id))
    if p is None:
        return None
    if p.document_number != document_number:
        return None
    if p.status not in (PURCHASE_PENDING, PURCHASE_APPROVED):
        return None
    return p


async def submit(
    db: AsyncSession,
    *,
    full_name: str,
    document_number: str,
    email: str,
    phone: str,
    city: str,
    birth_date: date,
    invoice_number: str,
    purchase_date: date,
    serial_number: str,
    terms_accepted: bool,
    department: str | None = None,
    document_front_ref: str | None = None,
    document_back_ref: str | None = None,
    invoice_ref: str | None = None,
    today: date | None = None,
) -> Purchase:
    """
    Register an end-customer purchase against a serial.

    All input checks run before the registry is touched. The Purchase row
    and the BUYER claim are written in one transaction: if the reservation
    fails the insert is rolled back and the reservation error surfaces.
    """
    today = today or utcnow().date()

    if not terms_accepted:
        raise ValidationError("Terms and conditions must be accepted")
    if age_on(birth_date, today) < settings.MIN_PARTICIPANT_AGE:
        raise ValidationError(f"Participants must be at least {settings.MIN_PARTICIPANT_AGE} years old")

    name = _required(full_name, "Full name")
    doc = _required(document_number, "Document number").upper()
    city_v = _required(city, "City")
    invoice = _required(invoice_number, "Invoice number")
    mail = _normalize_email(email)
    phone_v = normalize_phone(phone)

    if purchase_date > today:
        raise ValidationError("Purchase date cannot be in the future")

    sn = serials.normalize_serial(serial_number)
    if not sn:
        raise ValidationError("Serial number is required")

    found = await serials.lookup(db, sn, OWNER_BUYER)

    if found.status == CLAIM_USED:
        replay = await _replay_target(db, found.owner_ref, doc)
        if replay is not None:
            logger.info("purchase_submit_replayed", purchase_id=replay.id, serial_number=sn)
            return replay

    p = Purchase(
        full_name=name,
        document_number=doc,
        email=mail,
        phone=phone_v,
        city=city_v,
        department=(department or "").strip() or None,
        birth_date=birth_date,
        invoice_number=invoice,
        purchase_date=purchase_date,
        serial_number=sn,
        product_id=found.product_id,
        tier=found.tier,
        coupon_multiplier=found.multiplier,
        document_front_ref=document_front_ref,
        document_back_ref=document_back_ref,
        invoice_ref=invoice_ref,
        terms_accepted_at=utcnow(),
        status=PURCHASE_PENDING,
    )

    try:
        db.add(p)
        await db.flush()
        await serials.reserve(db, sn, OWNER_BUYER, p.id)
        await db.commit()
    except AlreadyUsed:
        await db.rollback()
        # lost a race against our own retry?
        again = await serials.lookup(db, sn, OWNER_BUYER)
        replay = await _replay_target(db, again.owner_ref, doc)
        if replay is not None:
            logger.info("purchase_submit_replayed", purchase_id=replay.id, serial_number=sn)
            return replay
        raise
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "purchase_submitted",
        purchase_id=p.id,
        serial_number=sn,
        tier=p.tier,
        coupon_multiplier=p.coupon_multiplier,
    )
    return p


async def get_purchase(db: AsyncSession, purchase_id: int) -> Purchase:
    p = await db.get(Purchase, int(purchase_id))
    if not p:
        raise NotFoundError("Purchase not found", purchase_id=purchase_id)
    return p


async def list_purchases(
    db: AsyncSession,
    *,
    status: str | None,
    search: str | None,
    limit: int,
    offset: int,
) -> tuple[list[Purchase], int]:
    filters = []
    if status:
        filters.append(Purchase.status == status.strip().upper())
    if search:
        q = search.strip()
        like = f"%{q}%"
        filters.append(
            or_(
                Purchase.serial_number == serials.normalize_serial(q),
                Purchase.document_number == q.upper(),
                Purchase.full_name.ilike(like),
                Purchase.email.ilike(like),
                Purchase.invoice_number == q,
            )
        )

    total = (await db.execute(select(func.count(Purchase.id)).where(*filters))).scalar_one()
    res = await db.execute(
        select(Purchase)
        .where(*filters)
        .order_by(Purchase.created_at.desc(), Purchase.id.desc())
        .limit(int(limit))
        .offset(int(offset))
    )
    return list(res.scalars().all()), int(total)


async def update_contact(db: AsyncSession, *, purchase_id: int, fields: dict) -> Purchase:
    p = await get_purchase(db, purchase_id)

    unknown = set(fields) - set(CONTACT_FIELDS)
    if unknown:
        raise ValidationError("Only contact fields can be edited", fields=sorted(unknown))

    try:
        for key, value in fields.items():
            if key == "email":
                value = _normalize_email(value)
            elif key == "phone":
                value = normalize_phone(value)
            elif key == "department":
                value = (value or "").strip() or None
            else:
                value = _required(value, key.replace("_", " ").capitalize())
            setattr(p, key, value)

        p.updated_at = utcnow()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("purchase_contact_updated", purchase_id=p.id, fields=sorted(fields))
    return p


async def attach_validation(
    db: AsyncSession,
    *,
    purchase_id: int,
    is_valid: bool | None,
    notes: str | None,
) -> Purchase:
    """
    Store the advisory document-check result. With AUTO_APPROVE_VALIDATED
    on, a positive result approves a still-PENDING purchase.
    """
    p = await get_purchase(db, purchase_id)

    try:
        p.validation_is_valid = is_valid
        p.validation_notes = (notes or "").strip() or None
        p.validated_at = utcnow()
        p.updated_at = utcnow()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("purchase_validation_attached", purchase_id=p.id, is_valid=is_valid)

    if is_valid is True and settings.AUTO_APPROVE_VALIDATED and p.status == PURCHASE_PENDING:
        p, _ = await approvals.approve(
            db,
            purchase_id=p.id,
            reviewer_ref=AUTO_VALIDATION_REVIEWER,
            notes="Approved automatically after document validation",
        )
    return p


async def request_validation(
    db: AsyncSession,
    *,
    purchase_id: int,
    client: DocumentValidationClient | None = None,
) -> Purchase:
    client = client or DocumentValidationClient()
    if not client.enabled:
        raise ValidationError("Document validation service is not configured")

    p = await get_purchase(db, purchase_id)

    try:
        is_valid, notes = await client.validate(
            document_number=p.document_number,
            full_name=p.full_name,
            document_front_ref=p.document_front_ref,
            document_back_ref=p.document_back_ref,
            invoice_ref=p.invoice_ref,
        )
    except (httpx.HTTPError, DocumentValidationError) as e:
        logger.warning("document_validation_failed", purchase_id=p.id, error=str(e))
        return await attach_validation(
            db,
            purchase_id=p.id,
            is_valid=None,
            notes=f"Validation request failed: {str(e)[:300]}",
        )

    return await attach_validation(db, purchase_id=p.id, is_valid=is_valid, notes=notes)
