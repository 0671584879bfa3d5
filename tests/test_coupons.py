import asyncio
import re

import pytest
from sqlalchemy import select, update

from sweepstakes.core.errors import IntegrityViolation, NotFoundError
from sweepstakes.models.coupon import COUPON_ACTIVE, COUPON_VOID, Coupon
from sweepstakes.services import approvals
from sweepstakes.services import coupons as coupon_service
from tests.factories import approved_purchase, make_product, make_serial, submit_purchase

CODE_RE = re.compile(rf"^CPN-[{coupon_service.CODE_ALPHABET}]{{8}}$")


async def test_codes_use_prefix_and_unambiguous_alphabet(db):
    product = await make_product(db, coupon_multiplier=5)
    await make_serial(db, "TV-1", product)
    _, issued = await approved_purchase(db, "TV-1")

    assert all(CODE_RE.match(c.code) for c in issued)
    for ch in "01OIL":
        assert ch not in coupon_service.CODE_ALPHABET


async def test_issue_refuses_unapproved_purchase(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")

    with pytest.raises(IntegrityViolation):
        await coupon_service.issue(db, p, actor_ref="r")


async def test_owner_key_groups_by_document(db):
    product = await make_product(db, coupon_multiplier=1)
    await make_serial(db, "TV-1", product)
    await make_serial(db, "TV-2", product)
    _, a = await approved_purchase(db, "TV-1")
    _, b = await approved_purchase(db, "TV-2", document_number=" 8456123")

    assert a[0].owner_key == b[0].owner_key == "BUYER:8456123"


async def test_partial_set_is_not_repaired(db):
    product = await make_product(db, coupon_multiplier=2)
    await make_serial(db, "TV-1", product)
    p, issued = await approved_purchase(db, "TV-1")
    purchase_id = p.id

    await db.execute(update(Coupon).where(Coupon.id == issued[1].id).values(status=COUPON_VOID))
    await db.commit()

    with pytest.raises(IntegrityViolation):
        await coupon_service.reissue_for_purchase(db, purchase_id=purchase_id, actor_ref="admin")

    live = (
        await db.execute(
            select(Coupon).where(Coupon.owner_purchase_id == purchase_id, Coupon.status == COUPON_ACTIVE)
        )
    ).scalars().all()
    assert len(live) == 1


async def test_reissue_returns_existing_set(db):
    product = await make_product(db, coupon_multiplier=2)
    await make_serial(db, "TV-1", product)
    p, issued = await approved_purchase(db, "TV-1")

    again = await coupon_service.reissue_for_purchase(db, purchase_id=p.id, actor_ref="admin")

    assert [c.id for c in again] == [c.id for c in issued]


async def test_concurrent_approvals_issue_one_set(db, session_factory):
    product = await make_product(db, coupon_multiplier=3)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")
    purchase_id = p.id
    await db.close()

    async def attempt(reviewer: str):
        async with session_factory() as s:
            _, issued = await approvals.approve(s, purchase_id=purchase_id, reviewer_ref=reviewer)
            return sorted(c.code for c in issued)

    first, second = await asyncio.gather(attempt("a@test"), attempt("b@test"))

    assert first == second
    async with session_factory() as s:
        rows = (await s.execute(select(Coupon).where(Coupon.owner_purchase_id == purchase_id))).scalars().all()
        assert len(rows) == 3


async def test_lookup_by_code_shows_event_timeline(db):
    product = await make_product(db, coupon_multiplier=1)
    await make_serial(db, "TV-1", product)
    _, issued = await approved_purchase(db, "TV-1")

    coupon = await coupon_service.get_coupon_by_code(db, issued[0].code.lower())
    events = await coupon_service.coupon_events(db, coupon.id)

    assert [e.event_type for e in events] == ["issued"]
    assert events[0].actor_ref == "reviewer@test"
    assert events[0].meta["serial_number"] == "TV-1"

    with pytest.raises(NotFoundError):
        await coupon_service.get_coupon_by_code(db, "CPN-NOPE")


async def test_counts_and_filters(db):
    product = await make_product(db, coupon_multiplier=2)
    await make_serial(db, "TV-1", product)
    await make_serial(db, "TV-2", product)
    p1, _ = await approved_purchase(db, "TV-1")
    await approved_purchase(db, "TV-2", document_number="999")
    await approvals.delete_purchase(db, purchase_id=p1.id, actor_ref="admin")

    counts = await coupon_service.coupon_counts(db)
    assert counts == {"ACTIVE": 2, "WINNER": 0, "VOID": 2}

    listed = await coupon_service.list_coupons(
        db,
        status="void",
        owner_type=None,
        serial_number="tv-1",
        purchase_id=None,
        sale_id=None,
        limit=10,
        offset=0,
    )
    assert len(listed) == 2
