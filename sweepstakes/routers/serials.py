# sweepstakes/routers/serials.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import get_db
from sweepstakes.core.errors import DomainError, http_error
from sweepstakes.models.serial import OWNER_BUYER
from sweepstakes.schemas.serials import SerialCheckOut
from sweepstakes.services import serials

router = APIRouter(prefix="/serials", tags=["Serials"])


@router.get("/{serial_number}/check", response_model=SerialCheckOut)
async def check_serial(
    serial_number: str,
    owner_class: str = Query(default=OWNER_BUYER),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await serials.lookup(db, serial_number, owner_class)
    except DomainError as e:
        raise http_error(e, public=True)
