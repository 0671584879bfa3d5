from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.config import settings
from sweepstakes.core.db import get_db
from sweepstakes.core.security import verify_token
from sweepstakes.models.seller import Seller


@dataclass(frozen=True)
class AdminActor:
    ref: str


def require_admin(
    admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
    admin_user: str | None = Header(default=None, alias="X-Admin-User"),
) -> AdminActor:
    if not admin_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing admin key")
    if not hmac.compare_digest(admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")

    ref = (admin_user or "").strip() or "admin"
    return AdminActor(ref=ref[:120])


async def require_seller(
    seller_id: int,
    seller_token: str | None = Header(default=None, alias="X-Seller-Token"),
    db: AsyncSession = Depends(get_db),
) -> Seller:
    if not seller_token:
        raise HTTPException(status_code=401, detail="Missing seller token")

    seller = await db.get(Seller, seller_id)
    if not seller:
        raise HTTPException(status_code=404, detail="Seller not found")
    if not verify_token(seller_token, seller.access_token_hash):
        raise HTTPException(status_code=401, detail="Invalid seller token")
    if not seller.is_active:
        raise HTTPException(status_code=403, detail="Seller inactive")

    return seller
