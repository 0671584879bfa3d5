from __future__ import annotations

from datetime import date

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import utcnow
from sweepstakes.core.security import hash_token, new_token
from sweepstakes.core.errors import NotFoundError, ValidationError
from sweepstakes.models.coupon import Coupon
from sweepstakes.models.product import Product
from sweepstakes.models.seller import Seller, SellerSale
from sweepstakes.models.serial import OWNER_SELLER
from sweepstakes.services import coupons as coupon_service
from sweepstakes.services import serials

logger = structlog.get_logger(__name__)


async def create_seller(
    db: AsyncSession,
    *,
    full_name: str,
    store_name: str,
    store_city: str,
    email: str | None = None,
    phone: str | None = None,
    store_department: str | None = None,
) -> tuple[Seller, str]:
    """Returns the seller and its access token. Only the hash is stored."""
    if not (full_name or "").strip():
        raise ValidationError("Full name is required")
    if not (store_name or "").strip():
        raise ValidationError("Store name is required")
    if not (store_city or "").strip():
        raise ValidationError("Store city is required")

    token = new_token()
    s = Seller(
        full_name=full_name.strip(),
        email=(email or "").strip().lower() or None,
        phone=(phone or "").strip() or None,
        store_name=store_name.strip(),
        store_city=store_city.strip(),
        store_department=(store_department or "").strip() or None,
        access_token_hash=hash_token(token),
        is_active=True,
        total_sales=0,
        total_points=0,
    )
    try:
        db.add(s)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("seller_created", seller_id=s.id)
    return s, token


async def get_seller(db: AsyncSession, seller_id: int) -> Seller:
    s = await db.get(Seller, int(seller_id))
    if not s:
        raise NotFoundError("Seller not found", seller_id=seller_id)
    return s


async def list_sellers(db: AsyncSession, *, only_active: bool = False) -> list[Seller]:
    stmt = select(Seller).order_by(Seller.total_points.desc(), Seller.id.asc())
    if only_active:
        stmt = stmt.where(Seller.is_active.is_(True))
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def set_seller_active(db: AsyncSession, *, seller_id: int, is_active: bool) -> Seller:
    s = await get_seller(db, seller_id)
    try:
        s.is_active = bool(is_active)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return s


async def register_sale(
    db: AsyncSession,
    *,
    seller: Seller,
    serial_number: str,
    client_name: str,
    sale_date: date,
    invoice_number: str | None = None,
    client_phone: str | None = None,
) -> tuple[SellerSale, list[Coupon]]:
    """
    A seller claims the SELLER track of a serial. The sale, the claim, the
    seller's coupons and the running totals commit together.
    """
    if not (client_name or "").strip():
        raise ValidationError("Client name is required")
    if sale_date > utcnow().date():
        raise ValidationError("Sale date cannot be in the future")

    sn = serials.normalize_serial(serial_number)
    if not sn:
        raise ValidationError("Serial number is required")

    found = await serials.lookup(db, sn, OWNER_SELLER)
    product = await db.get(Product, found.product_id)
    points = int(product.points_value) if product else 0

    sale = SellerSale(
        seller_id=seller.id,
        serial_number=sn,
        product_id=found.product_id,
        invoice_number=(invoice_number or "").strip() or None,
        client_name=client_name.strip(),
        client_phone=(client_phone or "").strip() or None,
        sale_date=sale_date,
        tier=found.tier,
        coupon_multiplier=found.multiplier,
        points_earned=points,
    )

    try:
        db.add(sale)
        await db.flush()
        await serials.reserve(db, sn, OWNER_SELLER, sale.id)

        issued = await coupon_service.issue_for_sale(db, sale, actor_ref=f"seller:{seller.id}")

        await db.execute(
            update(Seller)
            .where(Seller.id == seller.id)
            .values(total_sales=Seller.total_sales + 1, total_points=Seller.total_points + points)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "seller_sale_registered",
        seller_id=seller.id,
        sale_id=sale.id,
        serial_number=sn,
        points=points,
        coupons=len(issued),
    )
    return sale, issued


async def list_sales(db: AsyncSession, *, seller_id: int, limit: int, offset: int) -> tuple[list[SellerSale], int]:
    total = (
        await db.execute(select(func.count(SellerSale.id)).where(SellerSale.seller_id == int(seller_id)))
    ).scalar_one()
    res = await db.execute(
        select(SellerSale)
        .where(SellerSale.seller_id == int(seller_id))
        .order_by(SellerSale.created_at.desc(), SellerSale.id.desc())
        .limit(int(limit))
        .offset(int(offset))
    )
    return list(res.scalars().all()), int(total)


async def delete_sale(db: AsyncSession, *, sale_id: int, actor_ref: str) -> dict:
    try:
        stmt = select(SellerSale).where(SellerSale.id == int(sale_id)).with_for_update()
        sale = (await db.execute(stmt)).scalar_one_or_none()
        if not sale:
            raise NotFoundError("Sale not found", sale_id=sale_id)

        serial_number = sale.serial_number
        seller_id = sale.seller_id
        points = int(sale.points_earned or 0)

        voided = await coupon_service.void_for_owner(
            db,
            sale_id=sale.id,
            actor_ref=actor_ref,
            reason="sale_deleted",
        )

        found = await serials.lookup(db, serial_number, OWNER_SELLER)
        if found.owner_ref == sale.id:
            await serials.release(db, serial_number, OWNER_SELLER)

        await db.execute(
            update(Seller)
            .where(Seller.id == seller_id)
            .values(total_sales=Seller.total_sales - 1, total_points=Seller.total_points - points)
        )

        await db.delete(sale)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("seller_sale_deleted", sale_id=sale_id, seller_id=seller_id, coupons_voided=voided, actor=actor_ref)
    return {"sale_id": int(sale_id), "serial_number": serial_number, "coupons_voided": voided}
