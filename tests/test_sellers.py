from datetime import date

import pytest
from sqlalchemy import select

from sweepstakes.core.errors import AlreadyUsed, NotFoundError, ValidationError
from sweepstakes.core.security import verify_token
from sweepstakes.models.coupon import COUPON_VOID, Coupon
from sweepstakes.models.serial import CLAIM_AVAILABLE, CLAIM_USED, OWNER_BUYER, OWNER_SELLER
from sweepstakes.services import draws, sellers, serials
from tests.factories import make_product, make_seller, make_serial, submit_purchase


async def _sell(db, seller, serial_number: str, **kw):
    return await sellers.register_sale(
        db,
        seller=seller,
        serial_number=serial_number,
        client_name=kw.pop("client_name", "Maria Lopez"),
        sale_date=kw.pop("sale_date", date(2024, 6, 2)),
        **kw,
    )


async def test_create_seller_stores_only_token_hash(db):
    seller, token = await make_seller(db)

    assert token
    assert seller.access_token_hash.startswith("$2b$")
    assert token not in seller.access_token_hash
    assert verify_token(token, seller.access_token_hash)
    assert not verify_token("not-the-token", seller.access_token_hash)
    assert not verify_token(token, "garbage")
    assert seller.is_active is True


async def test_sale_claims_only_the_seller_track(db):
    product = await make_product(db, coupon_multiplier=2, points_value=15)
    await make_serial(db, "TV-1", product)
    seller, _ = await make_seller(db)

    sale, issued = await _sell(db, seller, " tv-1 ", invoice_number="F-9")

    assert sale.serial_number == "TV-1"
    assert sale.points_earned == 15
    assert len(issued) == 2
    assert all(c.owner_type == OWNER_SELLER and c.owner_key == f"SELLER:{seller.id}" for c in issued)

    seller_track = await serials.lookup(db, "TV-1", OWNER_SELLER)
    buyer_track = await serials.lookup(db, "TV-1", OWNER_BUYER)
    assert (seller_track.status, seller_track.owner_ref) == (CLAIM_USED, sale.id)
    assert buyer_track.status == CLAIM_AVAILABLE

    # the buyer can still register the same TV
    p = await submit_purchase(db, "TV-1")
    assert p.serial_number == "TV-1"


async def test_second_sale_of_same_serial_is_refused(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    seller, _ = await make_seller(db)
    other, _ = await make_seller(db, full_name="Rosa Quispe")
    await _sell(db, seller, "TV-1")

    with pytest.raises(AlreadyUsed):
        await _sell(db, other, "TV-1")


async def test_sale_validation(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    seller, _ = await make_seller(db)

    with pytest.raises(ValidationError):
        await _sell(db, seller, "TV-1", client_name=" ")
    with pytest.raises(ValidationError):
        await _sell(db, seller, "TV-1", sale_date=date(2999, 1, 1))
    with pytest.raises(NotFoundError):
        await _sell(db, seller, "TV-404")


async def test_totals_track_sales(db):
    product = await make_product(db, points_value=7)
    await make_serial(db, "TV-1", product)
    await make_serial(db, "TV-2", product)
    seller, _ = await make_seller(db)
    seller_id = seller.id

    await _sell(db, seller, "TV-1")
    await _sell(db, seller, "TV-2")

    s = await sellers.get_seller(db, seller_id)
    await db.refresh(s)
    assert (s.total_sales, s.total_points) == (2, 14)

    items, total = await sellers.list_sales(db, seller_id=seller_id, limit=10, offset=0)
    assert total == 2
    assert {i.serial_number for i in items} == {"TV-1", "TV-2"}


async def test_seller_coupons_enter_the_draw_pool(db):
    product = await make_product(db, coupon_multiplier=1)
    await make_serial(db, "TV-1", product)
    seller, _ = await make_seller(db)
    _, issued = await _sell(db, seller, "TV-1")

    d = await draws.run_draw(db, preselected_count=1, finalists_count=1, actor_ref="admin")

    rows = await draws.list_winners(db, draw_id=d.id)
    assert {w.coupon_id for w, _ in rows} == {issued[0].id}
    assert all(w.owner_type == OWNER_SELLER and w.owner_name == "Luis Vaca" for w, _ in rows)


async def test_delete_sale_cascade(db):
    product = await make_product(db, coupon_multiplier=2, points_value=5)
    await make_serial(db, "TV-1", product)
    seller, _ = await make_seller(db)
    seller_id = seller.id
    sale, issued = await _sell(db, seller, "TV-1")
    sale_id = sale.id
    coupon_ids = [c.id for c in issued]

    result = await sellers.delete_sale(db, sale_id=sale_id, actor_ref="admin")

    assert result == {"sale_id": sale_id, "serial_number": "TV-1", "coupons_voided": 2}
    found = await serials.lookup(db, "TV-1", OWNER_SELLER)
    assert found.status == CLAIM_AVAILABLE

    rows = (await db.execute(select(Coupon).where(Coupon.id.in_(coupon_ids)))).scalars().all()
    assert {c.status for c in rows} == {COUPON_VOID}

    s = await sellers.get_seller(db, seller_id)
    await db.refresh(s)
    assert (s.total_sales, s.total_points) == (0, 0)

    with pytest.raises(NotFoundError):
        await sellers.delete_sale(db, sale_id=sale_id, actor_ref="admin")

    # a resale of the same TV gets a fresh id
    again, _ = await _sell(db, await sellers.get_seller(db, seller_id), "TV-1")
    assert again.id != sale_id


async def test_deactivated_sellers_are_filtered(db):
    a, _ = await make_seller(db)
    b, _ = await make_seller(db, full_name="Rosa Quispe")

    await sellers.set_seller_active(db, seller_id=b.id, is_active=False)

    active = await sellers.list_sellers(db, only_active=True)
    assert [s.id for s in active] == [a.id]
    assert len(await sellers.list_sellers(db)) == 2
