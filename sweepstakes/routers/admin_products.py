# sweepstakes/routers/admin_products.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.schemas.products import ProductCreate, ProductOut
from sweepstakes.services import products

router = APIRouter(prefix="/admin/products", tags=["Admin - Products"])


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await products.create_product(db, **body.model_dump())
    except DomainError as e:
        raise http_error(e)


@router.get("", response_model=list[ProductOut])
async def list_products(
    only_active: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return await products.list_products(db, only_active=only_active)


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await products.get_product(db, product_id)
    except DomainError as e:
        raise http_error(e)
