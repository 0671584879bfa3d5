# sweepstakes/routers/draws.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.schemas.draws import DrawCreate, DrawOut, WinnerPublicOut
from sweepstakes.services import draws

router = APIRouter(prefix="/draws", tags=["Draws"])


@router.get("", response_model=list[DrawOut])
async def list_draws(db: AsyncSession = Depends(get_db)):
    return await draws.list_draws(db)


@router.get("/{draw_id}", response_model=DrawOut)
async def get_draw(draw_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await draws.get_draw(db, draw_id)
    except DomainError as e:
        raise http_error(e, public=True)


@router.get("/{draw_id}/winners", response_model=list[WinnerPublicOut])
async def list_winners(
    draw_id: int,
    winner_type: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        rows = await draws.list_winners(db, draw_id=draw_id, winner_type=winner_type)
    except DomainError as e:
        raise http_error(e, public=True)

    return [
        WinnerPublicOut(
            winner_type=w.winner_type,
            position=w.position,
            coupon_code=w.coupon_code,
            owner_name=w.owner_name,
            disqualified=dq is not None,
        )
        for w, dq in rows
    ]


@router.post("", response_model=DrawOut, status_code=status.HTTP_201_CREATED)
async def run_draw(
    body: DrawCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await draws.run_draw(
            db,
            preselected_count=body.preselected_count,
            finalists_count=body.finalists_count,
            actor_ref=admin.ref,
        )
    except DomainError as e:
        raise http_error(e)
