from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.errors import ConflictError, NotFoundError
from sweepstakes.models.product import Product


async def create_product(
    db: AsyncSession,
    *,
    model_name: str,
    tier: str,
    coupon_multiplier: int,
    points_value: int,
) -> Product:
    p = Product(
        model_name=model_name.strip(),
        tier=tier.strip().upper(),
        coupon_multiplier=int(coupon_multiplier),
        points_value=int(points_value),
        is_active=True,
    )
    db.add(p)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Product model already exists", model_name=model_name)
    return p


async def get_product(db: AsyncSession, product_id: int) -> Product:
    p = await db.get(Product, int(product_id))
    if not p:
        raise NotFoundError("Product not found", product_id=product_id)
    return p


async def list_products(db: AsyncSession, *, only_active: bool = False) -> list[Product]:
    stmt = select(Product).order_by(Product.model_name.asc())
    if only_active:
        stmt = stmt.where(Product.is_active.is_(True))
    res = await db.execute(stmt)
    return list(res.scalars().all())
