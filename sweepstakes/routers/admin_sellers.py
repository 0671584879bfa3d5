# sweepstakes/routers/admin_sellers.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.schemas.sellers import (
    SaleDeletedOut,
    SaleListOut,
    SaleOut,
    SellerActiveUpdate,
    SellerCreate,
    SellerCreatedOut,
    SellerOut,
)
from sweepstakes.services import sellers

router = APIRouter(prefix="/admin", tags=["Admin - Sellers"])


@router.post("/sellers", response_model=SellerCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_seller(
    body: SellerCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        seller, token = await sellers.create_seller(db, **body.model_dump())
    except DomainError as e:
        raise http_error(e)
    return SellerCreatedOut(seller=SellerOut.model_validate(seller), access_token=token)


@router.get("/sellers", response_model=list[SellerOut])
async def list_sellers(
    only_active: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return await sellers.list_sellers(db, only_active=only_active)


@router.get("/sellers/{seller_id}", response_model=SellerOut)
async def get_seller(
    seller_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await sellers.get_seller(db, seller_id)
    except DomainError as e:
        raise http_error(e)


@router.patch("/sellers/{seller_id}", response_model=SellerOut)
async def set_seller_active(
    seller_id: int,
    body: SellerActiveUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await sellers.set_seller_active(db, seller_id=seller_id, is_active=body.is_active)
    except DomainError as e:
        raise http_error(e)


@router.get("/sellers/{seller_id}/sales", response_model=SaleListOut)
async def list_seller_sales(
    seller_id: int,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    items, total = await sellers.list_sales(db, seller_id=seller_id, limit=limit, offset=offset)
    return SaleListOut(total=total, items=[SaleOut.model_validate(s) for s in items])


@router.delete("/sales/{sale_id}", response_model=SaleDeletedOut)
async def delete_sale(
    sale_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await sellers.delete_sale(db, sale_id=sale_id, actor_ref=admin.ref)
    except DomainError as e:
        raise http_error(e)
