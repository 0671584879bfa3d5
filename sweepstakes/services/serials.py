from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import utcnow
from sweepstakes.core.errors import (
    AlreadyUsed,
    ConflictError,
    DuplicateSerial,
    NotFoundError,
    SerialBlocked,
    ValidationError,
)
from sweepstakes.models.product import Product
from sweepstakes.models.serial import (
    CLAIM_AVAILABLE,
    CLAIM_BLOCKED,
    CLAIM_USED,
    OWNER_CLASSES,
    SerialClaim,
    SerialEntry,
)

logger = structlog.get_logger(__name__)


def normalize_serial(serial: str | None) -> str:
    return (serial or "").strip().upper()


def _check_owner_class(owner_class: str) -> str:
    oc = (owner_class or "").strip().upper()
    if oc not in OWNER_CLASSES:
        raise ValidationError(f"owner_class must be one of {', '.join(OWNER_CLASSES)}", owner_class=owner_class)
    return oc


@dataclass
class SerialLookup:
    serial_number: str
    owner_class: str
    status: str
    tier: str
    multiplier: int
    product_id: int
    product_name: str
    owner_ref: int | None = None


@dataclass
class ImportRowResult:
    row: int
    serial_number: str
    ok: bool
    error_code: str | None = None
    error: str | None = None


@dataclass
class ImportReport:
    created: int = 0
    failed: int = 0
    rows: list[ImportRowResult] = field(default_factory=list)

    def ok(self, row: int, serial_number: str) -> None:
        self.created += 1
        self.rows.append(ImportRowResult(row=row, serial_number=serial_number, ok=True))

    def fail(self, row: int, serial_number: str, code: str, message: str) -> None:
        self.failed += 1
        self.rows.append(
            ImportRowResult(row=row, serial_number=serial_number, ok=False, error_code=code, error=message)
        )


async def _get_entry(db: AsyncSession, serial_number: str) -> SerialEntry:
    res = await db.execute(select(SerialEntry).where(SerialEntry.serial_number == serial_number))
    entry = res.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Serial number not found in registry", serial_number=serial_number)
    return entry


async def _get_claim(db: AsyncSession, serial_id: int, owner_class: str) -> SerialClaim:
    res = await db.execute(
        select(SerialClaim).where(SerialClaim.serial_id == serial_id, SerialClaim.owner_class == owner_class)
    )
    claim = res.scalar_one_or_none()
    if claim is None:
        # every entry is created with both claims
        raise NotFoundError("Serial claim missing", serial_id=serial_id, owner_class=owner_class)
    return claim


async def lookup(db: AsyncSession, serial: str, owner_class: str) -> SerialLookup:
    serial_number = normalize_serial(serial)
    oc = _check_owner_class(owner_class)
    if not serial_number:
        raise ValidationError("Serial number is required")

    stmt = (
        select(SerialEntry, SerialClaim, Product)
        .join(SerialClaim, and_(SerialClaim.serial_id == SerialEntry.id, SerialClaim.owner_class == oc))
        .join(Product, Product.id == SerialEntry.product_id)
        .where(SerialEntry.serial_number == serial_number)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFoundError("Serial number not found in registry", serial_number=serial_number)

    entry, claim, product = row
    return SerialLookup(
        serial_number=entry.serial_number,
        owner_class=oc,
        status=claim.status,
        tier=entry.tier,
        multiplier=int(entry.coupon_multiplier),
        product_id=int(product.id),
        product_name=product.model_name,
        owner_ref=claim.owner_ref,
    )


async def reserve(db: AsyncSession, serial: str, owner_class: str, owner_ref: int) -> SerialEntry:
    """
    Compare-and-swap AVAILABLE -> USED on the owner-class claim.

    Runs inside the caller's transaction and never commits: the referencing
    Purchase/Sale and the claim must land together. On failure nothing has
    been written by this call.
    """
    serial_number = normalize_serial(serial)
    oc = _check_owner_class(owner_class)
    entry = await _get_entry(db, serial_number)

    res = await db.execute(
        update(SerialClaim)
        .where(
            SerialClaim.serial_id == entry.id,
            SerialClaim.owner_class == oc,
            SerialClaim.status == CLAIM_AVAILABLE,
        )
        .values(status=CLAIM_USED, owner_ref=int(owner_ref), claimed_at=utcnow())
    )

    if res.rowcount != 1:
        claim = await _get_claim(db, entry.id, oc)
        if claim.status == CLAIM_BLOCKED:
            logger.info("serial_reserve_blocked", serial_number=serial_number, owner_class=oc)
            raise SerialBlocked(
                "Serial number is blocked",
                serial_number=serial_number,
                owner_class=oc,
                block_reason=entry.block_reason,
            )
        logger.info("serial_reserve_conflict", serial_number=serial_number, owner_class=oc, owner_ref=claim.owner_ref)
        raise AlreadyUsed(
            "Serial number already registered for this owner class",
            serial_number=serial_number,
            owner_class=oc,
            existing_owner_ref=claim.owner_ref,
        )

    logger.info("serial_reserved", serial_number=serial_number, owner_class=oc, owner_ref=owner_ref)
    return entry


async def release(db: AsyncSession, serial: str, owner_class: str) -> None:
    """
    Administrative USED -> AVAILABLE. Part of a delete cascade, so like
    reserve() it leaves committing to the caller.
    """
    serial_number = normalize_serial(serial)
    oc = _check_owner_class(owner_class)
    entry = await _get_entry(db, serial_number)

    await db.execute(
        update(SerialClaim)
        .where(
            SerialClaim.serial_id == entry.id,
            SerialClaim.owner_class == oc,
            SerialClaim.status == CLAIM_USED,
        )
        .values(status=CLAIM_AVAILABLE, owner_ref=None, claimed_at=None)
    )
    logger.info("serial_released", serial_number=serial_number, owner_class=oc)


async def _insert_entry(
    db: AsyncSession,
    *,
    serial_number: str,
    product: Product,
    tier: str | None,
    coupon_multiplier: int | None,
) -> SerialEntry:
    multiplier = int(coupon_multiplier) if coupon_multiplier is not None else int(product.coupon_multiplier)
    if multiplier < 1:
        raise ValidationError("coupon_multiplier must be >= 1", serial_number=serial_number)

    entry = SerialEntry(
        serial_number=serial_number,
        product_id=product.id,
        tier=(tier or product.tier).strip().upper(),
        coupon_multiplier=multiplier,
    )
    db.add(entry)
    await db.flush()

    for oc in OWNER_CLASSES:
        db.add(SerialClaim(serial_id=entry.id, owner_class=oc, status=CLAIM_AVAILABLE))
    await db.flush()
    return entry


async def _get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, int(product_id))
    if product is None:
        raise NotFoundError("Product not found", product_id=product_id)
    return product


async def create_serial(
    db: AsyncSession,
    *,
    serial_number: str,
    product_id: int,
    tier: str | None = None,
    coupon_multiplier: int | None = None,
) -> SerialEntry:
    sn = normalize_serial(serial_number)
    if not sn:
        raise ValidationError("Serial number is required")

    product = await _get_product(db, product_id)

    try:
        entry = await _insert_entry(db, serial_number=sn, product=product, tier=tier, coupon_multiplier=coupon_multiplier)
        await db.commit()
        return entry
    except IntegrityError:
        await db.rollback()
        raise DuplicateSerial("Serial number already exists", serial_number=sn)
    except Exception:
        await db.rollback()
        raise


async def bulk_import(db: AsyncSession, rows: list[dict]) -> ImportReport:
    """
    Insert catalogue rows one SAVEPOINT at a time. A bad row is reported
    and skipped; the rest of the batch still commits.
    """
    report = ImportReport()
    products: dict[int, Product | None] = {}
    seen: set[str] = set()

    try:
        for idx, raw in enumerate(rows, start=1):
            sn = normalize_serial(raw.get("serial_number"))

            if not sn:
                report.fail(idx, sn, ValidationError.code, "Serial number is required")
                continue
            if sn in seen:
                report.fail(idx, sn, DuplicateSerial.code, "Duplicate serial number within the batch")
                continue

            pid = raw.get("product_id")
            if pid is not None and int(pid) not in products:
                products[int(pid)] = await db.get(Product, int(pid))
            product = products.get(int(pid)) if pid is not None else None
            if product is None:
                report.fail(idx, sn, NotFoundError.code, "Product not found")
                continue

            multiplier = raw.get("coupon_multiplier")
            if multiplier is not None and int(multiplier) < 1:
                report.fail(idx, sn, ValidationError.code, "coupon_multiplier must be >= 1")
                continue

            try:
                async with db.begin_nested():
                    await _insert_entry(
                        db,
                        serial_number=sn,
                        product=product,
                        tier=raw.get("tier"),
                        coupon_multiplier=multiplier,
                    )
            except IntegrityError:
                report.fail(idx, sn, DuplicateSerial.code, "Serial number already exists")
                continue

            seen.add(sn)
            report.ok(idx, sn)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("serial_import_finished", created=report.created, failed=report.failed)
    return report


async def set_blocked(db: AsyncSession, *, serial: str, blocked: bool, reason: str | None) -> SerialEntry:
    """
    Freeze (or unfreeze) the AVAILABLE tracks of a serial. USED claims are
    never touched: blocking does not undo a registration.
    """
    sn = normalize_serial(serial)
    stmt = select(SerialEntry).where(SerialEntry.serial_number == sn).with_for_update()
    entry = (await db.execute(stmt)).scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Serial number not found in registry", serial_number=sn)

    if blocked and not (reason or "").strip():
        raise ValidationError("A reason is required to block a serial", serial_number=sn)

    src, dst = (CLAIM_AVAILABLE, CLAIM_BLOCKED) if blocked else (CLAIM_BLOCKED, CLAIM_AVAILABLE)

    try:
        await db.execute(
            update(SerialClaim)
            .where(SerialClaim.serial_id == entry.id, SerialClaim.status == src)
            .values(status=dst)
        )
        entry.block_reason = reason.strip() if blocked else None
        entry.updated_at = utcnow()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("serial_block_changed", serial_number=sn, blocked=blocked)
    return entry


async def delete_serial(db: AsyncSession, *, serial: str) -> None:
    sn = normalize_serial(serial)
    stmt = select(SerialEntry).where(SerialEntry.serial_number == sn).with_for_update()
    entry = (await db.execute(stmt)).scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Serial number not found in registry", serial_number=sn)

    claims = (await db.execute(select(SerialClaim).where(SerialClaim.serial_id == entry.id).with_for_update())).scalars().all()
    if any(c.status == CLAIM_USED for c in claims):
        raise ConflictError(
            "Serial number is in use and cannot be deleted",
            serial_number=sn,
            used_by=[c.owner_class for c in claims if c.status == CLAIM_USED],
        )

    try:
        for c in claims:
            await db.delete(c)
        await db.delete(entry)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("serial_deleted", serial_number=sn)


async def get_serial_detail(db: AsyncSession, serial: str) -> tuple[SerialEntry, list[SerialClaim]]:
    entry = await _get_entry(db, normalize_serial(serial))
    claims = (
        await db.execute(select(SerialClaim).where(SerialClaim.serial_id == entry.id).order_by(SerialClaim.owner_class))
    ).scalars().all()
    return entry, list(claims)


async def list_serials(
    db: AsyncSession,
    *,
    search: str | None,
    status: str | None,
    owner_class: str | None,
    limit: int,
    offset: int,
) -> tuple[list[tuple[SerialEntry, list[SerialClaim]]], int]:
    filters = []
    if search:
        filters.append(SerialEntry.serial_number.like(f"{normalize_serial(search)}%"))
    if status:
        claim_filter = [SerialClaim.serial_id == SerialEntry.id, SerialClaim.status == status.strip().upper()]
        if owner_class:
            claim_filter.append(SerialClaim.owner_class == _check_owner_class(owner_class))
        filters.append(select(SerialClaim.id).where(*claim_filter).exists())

    total = (await db.execute(select(func.count(SerialEntry.id)).where(*filters))).scalar_one()

    entries = (
        await db.execute(
            select(SerialEntry)
            .where(*filters)
            .order_by(SerialEntry.created_at.desc(), SerialEntry.id.desc())
            .limit(int(limit))
            .offset(int(offset))
        )
    ).scalars().all()

    claims_by_serial: dict[int, list[SerialClaim]] = {e.id: [] for e in entries}
    if entries:
        claims = (
            await db.execute(
                select(SerialClaim)
                .where(SerialClaim.serial_id.in_(list(claims_by_serial)))
                .order_by(SerialClaim.owner_class)
            )
        ).scalars().all()
        for c in claims:
            claims_by_serial[c.serial_id].append(c)

    return [(e, claims_by_serial[e.id]) for e in entries], int(total)


async def serial_stats(db: AsyncSession) -> dict:
    total = (await db.execute(select(func.count(SerialEntry.id)))).scalar_one()
    res = await db.execute(
        select(SerialClaim.owner_class, SerialClaim.status, func.count(SerialClaim.id)).group_by(
            SerialClaim.owner_class, SerialClaim.status
        )
    )

    by_owner: dict[str, dict[str, int]] = {
        oc: {CLAIM_AVAILABLE: 0, CLAIM_USED: 0, CLAIM_BLOCKED: 0} for oc in OWNER_CLASSES
    }
    for oc, status, count in res.all():
        by_owner.setdefault(str(oc), {})[str(status)] = int(count)

    return {"total": int(total), "by_owner_class": by_owner}
