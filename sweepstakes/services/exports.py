from __future__ import annotations

import csv
from datetime import datetime
from io import BytesIO, StringIO
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.db import utcnow
from sweepstakes.models.draw import WINNER_FINALIST
from sweepstakes.models.purchase import Purchase
from sweepstakes.services import draws

PURCHASE_COLUMNS = [
    "id",
    "created_at",
    "status",
    "full_name",
    "document_number",
    "email",
    "phone",
    "city",
    "department",
    "invoice_number",
    "purchase_date",
    "serial_number",
    "tier",
    "coupon_multiplier",
    "validation_is_valid",
    "reviewer_ref",
    "reviewed_at",
]

WINNER_COLUMNS = [
    "winner_type",
    "position",
    "coupon_code",
    "owner_type",
    "owner_name",
    "owner_email",
    "owner_phone",
    "is_notified",
    "disqualified",
    "disqualification_reason",
]


def _fmt_dt(dt: Optional[datetime]) -> str:
    if not dt:
        return ""
    return dt.isoformat().replace("+00:00", "Z")


def _cell(v) -> str:
    if v is None:
        return ""
    if isinstance(v, datetime):
        return _fmt_dt(v)
    return str(v)


def _to_csv(header: list[str], rows: list[list[str]]) -> str:
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(header)
    w.writerows(rows)
    return buf.getvalue()


async def purchases_csv(db: AsyncSession, *, status: str | None = None, limit: int = 50000) -> str:
    stmt = select(Purchase).order_by(Purchase.created_at.asc(), Purchase.id.asc()).limit(limit)
    if status:
        stmt = stmt.where(Purchase.status == status.strip().upper())
    purchases = (await db.execute(stmt)).scalars().all()

    rows = [[_cell(getattr(p, col)) for col in PURCHASE_COLUMNS] for p in purchases]
    return _to_csv(PURCHASE_COLUMNS, rows)


async def _winner_rows(db: AsyncSession, draw_id: int) -> list[list[str]]:
    pairs = await draws.list_winners(db, draw_id=draw_id)
    rows: list[list[str]] = []
    for w, dq in pairs:
        rows.append(
            [
                w.winner_type,
                str(w.position),
                w.coupon_code,
                w.owner_type,
                w.owner_name,
                w.owner_email or "",
                w.owner_phone or "",
                "yes" if w.is_notified else "no",
                "yes" if dq else "no",
                dq.reason if dq else "",
            ]
        )
    return rows


async def winners_csv(db: AsyncSession, *, draw_id: int) -> str:
    return _to_csv(WINNER_COLUMNS, await _winner_rows(db, draw_id))


def _build_pdf(
    *,
    title: str,
    subtitle_lines: list[str],
    header: list[str],
    rows: list[list[str]],
) -> bytes:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=landscape(A4),
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )

    styles = getSampleStyleSheet()
    story = [Paragraph(f"<b>{escape(title)}</b>", styles["Title"]), Spacer(1, 6)]

    for line in subtitle_lines:
        story.append(Paragraph(line, styles["Normal"]))
    story.append(Spacer(1, 10))

    tbl = Table([header] + rows, repeatRows=1)
    tbl.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#111827")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), 9),
                ("FONTSIZE", (0, 1), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.lightgrey]),
                ("LEFTPADDING", (0, 0), (-1, -1), 4),
                ("RIGHTPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    story.append(tbl)
    doc.build(story)
    return buf.getvalue()


async def winners_pdf(db: AsyncSession, *, draw_id: int) -> bytes:
    draw = await draws.get_draw(db, draw_id)
    rows = await _winner_rows(db, draw_id)

    finalists = [r for r in rows if r[0] == WINNER_FINALIST]
    preselected = [r for r in rows if r[0] != WINNER_FINALIST]

    subtitle = [
        f"Draw <b>#{draw.id}</b> executed at {_fmt_dt(draw.executed_at)} by {escape(draw.executed_by or '')}",
        f"Active tickets: {draw.total_tickets or 0} | Participants: {draw.total_participants or 0}",
        f"Preselected: {draw.preselected_count or 0} | Finalists: {draw.finalists_count or 0}",
        f"Generated at: {_fmt_dt(utcnow())}",
    ]
    if draw.is_degraded:
        subtitle.append(f"<i>Degraded: {escape(draw.degraded_reason or '')}</i>")

    header = ["Tier", "#", "Coupon", "Owner", "Name", "Email", "Phone", "Notified", "DQ", "DQ reason"]
    return _build_pdf(
        title="Sweepstakes: Draw Winners",
        subtitle_lines=subtitle,
        header=header,
        rows=finalists + preselected,
    )
