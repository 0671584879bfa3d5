# sweepstakes/routers/sellers.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import require_seller
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.models.seller import Seller
from sweepstakes.schemas.coupons import CouponOut
from sweepstakes.schemas.sellers import SaleCreate, SaleCreatedOut, SaleListOut, SaleOut
from sweepstakes.services import sellers

router = APIRouter(prefix="/sellers", tags=["Sellers"])


@router.post("/{seller_id}/sales", response_model=SaleCreatedOut, status_code=status.HTTP_201_CREATED)
async def register_sale(
    body: SaleCreate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    try:
        sale, issued = await sellers.register_sale(db, seller=seller, **body.model_dump())
    except DomainError as e:
        raise http_error(e, public=True)
    return SaleCreatedOut(sale=SaleOut.model_validate(sale), coupons=[CouponOut.model_validate(c) for c in issued])


@router.get("/{seller_id}/sales", response_model=SaleListOut)
async def list_my_sales(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    items, total = await sellers.list_sales(db, seller_id=seller.id, limit=limit, offset=offset)
    return SaleListOut(total=total, items=[SaleOut.model_validate(s) for s in items])
