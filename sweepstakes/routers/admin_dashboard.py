# sweepstakes/routers/admin_dashboard.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.services.stats import campaign_stats

router = APIRouter(prefix="/admin", tags=["Admin - Dashboard"])


@router.get("/stats")
async def stats(
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return await campaign_stats(db)
