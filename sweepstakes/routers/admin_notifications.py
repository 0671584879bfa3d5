# sweepstakes/routers/admin_notifications.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.schemas.notifications import NotificationOut, RetryRequest
from sweepstakes.services import notifications

router = APIRouter(prefix="/admin/notifications", tags=["Admin - Notifications"])


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
    status: str | None = Query(default=None),
    purchase_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return await notifications.list_notifications(
        db,
        status=status,
        purchase_id=purchase_id,
        limit=limit,
        offset=offset,
    )


@router.post("/retry", response_model=list[NotificationOut])
async def retry_failed(
    body: RetryRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    limit = body.limit if body else 50
    return await notifications.retry_failed(db, limit=limit)
