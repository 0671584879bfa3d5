# sweepstakes/routers/admin_draws.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.deps import AdminActor, require_admin
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.schemas.draws import DisqualificationOut, DisqualifyRequest, DrawCreate, DrawOut, WinnerOut
from sweepstakes.services import draws

router = APIRouter(prefix="/admin/draws", tags=["Admin - Draws"])


@router.post("", response_model=DrawOut, status_code=status.HTTP_201_CREATED)
async def create_draw(
    body: DrawCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await draws.create_draw(
            db,
            preselected_count=body.preselected_count,
            finalists_count=body.finalists_count,
            requested_by=admin.ref,
        )
    except DomainError as e:
        raise http_error(e)


@router.post("/{draw_id}/execute", response_model=DrawOut)
async def execute_draw(
    draw_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await draws.execute_draw(db, draw_id=draw_id, executed_by=admin.ref)
    except DomainError as e:
        raise http_error(e)


@router.get("/{draw_id}/winners", response_model=list[WinnerOut])
async def list_winners(
    draw_id: int,
    winner_type: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        rows = await draws.list_winners(db, draw_id=draw_id, winner_type=winner_type)
    except DomainError as e:
        raise http_error(e)

    out: list[WinnerOut] = []
    for w, dq in rows:
        out.append(
            WinnerOut(
                id=w.id,
                draw_id=w.draw_id,
                coupon_id=w.coupon_id,
                coupon_code=w.coupon_code,
                winner_type=w.winner_type,
                position=w.position,
                owner_type=w.owner_type,
                owner_name=w.owner_name,
                owner_email=w.owner_email,
                owner_phone=w.owner_phone,
                is_notified=w.is_notified,
                created_at=w.created_at,
                disqualified=dq is not None,
                disqualification_reason=dq.reason if dq else None,
                disqualified_by=dq.disqualified_by if dq else None,
                disqualified_at=dq.created_at if dq else None,
            )
        )
    return out


@router.post("/{draw_id}/winners/{winner_id}/notified")
async def mark_winner_notified(
    draw_id: int,
    winner_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        w = await draws.mark_winner_notified(db, draw_id=draw_id, winner_id=winner_id)
    except DomainError as e:
        raise http_error(e)
    return {"winner_id": w.id, "is_notified": w.is_notified}


@router.post("/{draw_id}/winners/{winner_id}/disqualify", response_model=DisqualificationOut)
async def disqualify_winner(
    draw_id: int,
    winner_id: int,
    body: DisqualifyRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    try:
        return await draws.disqualify_winner(
            db,
            draw_id=draw_id,
            winner_id=winner_id,
            reason=body.reason,
            actor_ref=admin.ref,
        )
    except DomainError as e:
        raise http_error(e)
