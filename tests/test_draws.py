import asyncio

import pytest
from sqlalchemy import select

from sweepstakes.core.errors import AlreadyExecuted, ConflictError, NotFoundError, ValidationError
from sweepstakes.models.coupon import COUPON_ACTIVE, COUPON_VOID, COUPON_WINNER, Coupon
from sweepstakes.models.draw import DRAW_EXECUTED, DRAW_PENDING, WINNER_FINALIST, WINNER_PRESELECTED
from sweepstakes.services import approvals, coupons as coupon_service, draws
from tests.factories import approved_purchase, make_product, make_serial


async def _seed_pool(db, buyers: int, multiplier: int = 2) -> None:
    product = await make_product(db, coupon_multiplier=multiplier)
    for i in range(buyers):
        await make_serial(db, f"TV-{i}", product)
        await approved_purchase(db, f"TV-{i}", document_number=f"DOC-{i}", email=f"b{i}@example.com")


@pytest.mark.parametrize(
    "pre, fin",
    [(0, 0), (3, 0), (2, 3), (1001, 1)],
)
async def test_create_draw_validates_sizes(db, pre, fin):
    with pytest.raises(ValidationError):
        await draws.create_draw(db, preselected_count=pre, finalists_count=fin, requested_by="admin")


async def test_empty_pool_is_refused(db):
    d = await draws.create_draw(db, preselected_count=3, finalists_count=1, requested_by="admin")
    draw_id = d.id

    with pytest.raises(ValidationError):
        await draws.execute_draw(db, draw_id=draw_id, executed_by="admin")

    d = await draws.get_draw(db, draw_id)
    assert d.status == DRAW_PENDING


async def test_failed_run_does_not_keep_the_draw(db):
    for _ in range(2):
        with pytest.raises(ValidationError):
            await draws.run_draw(db, preselected_count=3, finalists_count=1, actor_ref="admin")

    assert await draws.list_draws(db) == []

    await _seed_pool(db, buyers=2, multiplier=1)
    d = await draws.run_draw(db, preselected_count=1, finalists_count=1, actor_ref="admin")
    assert [x.id for x in await draws.list_draws(db)] == [d.id]


async def test_execute_unknown_draw(db):
    with pytest.raises(NotFoundError):
        await draws.execute_draw(db, draw_id=999, executed_by="admin")


async def test_finalists_are_a_subset_of_preselected(db):
    await _seed_pool(db, buyers=5, multiplier=2)

    d = await draws.run_draw(db, preselected_count=6, finalists_count=3, actor_ref="admin")

    assert d.status == DRAW_EXECUTED
    assert (d.preselected_count, d.finalists_count) == (6, 3)
    assert (d.total_tickets, d.total_participants) == (10, 5)
    assert d.is_degraded is False
    assert d.executed_by == "admin"

    rows = await draws.list_winners(db, draw_id=d.id)
    pre = [w for w, _ in rows if w.winner_type == WINNER_PRESELECTED]
    fin = [w for w, _ in rows if w.winner_type == WINNER_FINALIST]
    assert [w.position for w in pre] == [1, 2, 3, 4, 5, 6]
    assert [w.position for w in fin] == [1, 2, 3]
    assert len({w.coupon_id for w in pre}) == 6
    assert {w.coupon_id for w in fin} <= {w.coupon_id for w in pre}
    assert all(w.owner_type == "BUYER" and w.owner_email for w in pre)


async def test_drawn_coupons_become_winners(session_factory):
    async with session_factory() as s:
        await _seed_pool(s, buyers=4, multiplier=1)
        d = await draws.run_draw(s, preselected_count=2, finalists_count=1, actor_ref="admin")
        draw_id = d.id

    async with session_factory() as s:
        rows = await draws.list_winners(s, draw_id=draw_id, winner_type="preselected")
        drawn = {w.coupon_id for w, _ in rows}
        statuses = dict((await s.execute(select(Coupon.id, Coupon.status))).all())

        assert {statuses[cid] for cid in drawn} == {COUPON_WINNER}
        assert sorted(v for k, v in statuses.items() if k not in drawn) == [COUPON_ACTIVE, COUPON_ACTIVE]

        events = await coupon_service.coupon_events(s, next(iter(drawn)))
        assert [e.event_type for e in events] == ["issued", "won"]


async def test_small_pool_clamps_and_marks_degraded(db):
    await _seed_pool(db, buyers=2, multiplier=1)

    d = await draws.run_draw(db, preselected_count=5, finalists_count=4, actor_ref="admin")

    assert (d.preselected_count, d.finalists_count) == (2, 2)
    assert d.is_degraded is True
    assert "smaller than requested" in d.degraded_reason
    assert (d.requested_preselected_count, d.requested_finalists_count) == (5, 4)


async def test_void_coupons_never_enter_the_pool(db):
    product = await make_product(db, coupon_multiplier=3)
    await make_serial(db, "TV-A", product)
    await make_serial(db, "TV-B", product)
    gone, _ = await approved_purchase(db, "TV-A")
    _, kept = await approved_purchase(db, "TV-B", document_number="DOC-B")
    await approvals.delete_purchase(db, purchase_id=gone.id, actor_ref="admin")

    d = await draws.run_draw(db, preselected_count=3, finalists_count=1, actor_ref="admin")

    assert d.total_tickets == 3
    rows = await draws.list_winners(db, draw_id=d.id)
    assert {w.coupon_id for w, _ in rows} == {c.id for c in kept}
    void = (await db.execute(select(Coupon).where(Coupon.status == COUPON_VOID))).scalars().all()
    assert len(void) == 3


async def test_draw_runs_only_once(db):
    await _seed_pool(db, buyers=3, multiplier=1)
    d = await draws.run_draw(db, preselected_count=1, finalists_count=1, actor_ref="admin")
    draw_id = d.id

    with pytest.raises(AlreadyExecuted):
        await draws.execute_draw(db, draw_id=draw_id, executed_by="admin")

    with pytest.raises(AlreadyExecuted):
        await draws.create_draw(db, preselected_count=1, finalists_count=1, requested_by="admin")


async def test_concurrent_executions_have_one_success(session_factory):
    async with session_factory() as s:
        await _seed_pool(s, buyers=4, multiplier=1)
        d1 = await draws.create_draw(s, preselected_count=2, finalists_count=1, requested_by="a")
        d2 = await draws.create_draw(s, preselected_count=2, finalists_count=1, requested_by="b")
        ids = [d1.id, d1.id, d2.id]

    async def attempt(draw_id: int):
        async with session_factory() as s:
            return await draws.execute_draw(s, draw_id=draw_id, executed_by="admin")

    results = await asyncio.gather(*(attempt(i) for i in ids), return_exceptions=True)

    ok = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(ok) == 1
    assert all(isinstance(e, AlreadyExecuted) for e in failed)

    async with session_factory() as s:
        executed = await draws.list_draws(s, status="executed")
        assert len(executed) == 1
        winners = (await s.execute(select(Coupon).where(Coupon.status == COUPON_WINNER))).scalars().all()
        assert len(winners) == 2


async def test_disqualification_is_append_only(db):
    await _seed_pool(db, buyers=3, multiplier=1)
    d = await draws.run_draw(db, preselected_count=2, finalists_count=1, actor_ref="admin")
    draw_id = d.id
    winner, _ = (await draws.list_winners(db, draw_id=draw_id, winner_type="finalist"))[0]
    winner_id, coupon_id = winner.id, winner.coupon_id

    with pytest.raises(ValidationError):
        await draws.disqualify_winner(db, draw_id=draw_id, winner_id=winner_id, reason=" ", actor_ref="admin")

    dq = await draws.disqualify_winner(
        db, draw_id=draw_id, winner_id=winner_id, reason="Underage participant", actor_ref="admin"
    )
    assert dq.winner_id == winner_id

    with pytest.raises(ConflictError):
        await draws.disqualify_winner(db, draw_id=draw_id, winner_id=winner_id, reason="Again", actor_ref="admin")

    rows = await draws.list_winners(db, draw_id=draw_id, winner_type="finalist")
    w, recorded = rows[0]
    assert w.id == winner_id
    assert recorded.reason == "Underage participant"

    coupon = await db.get(Coupon, coupon_id)
    await db.refresh(coupon)
    assert coupon.status == COUPON_WINNER
    events = await coupon_service.coupon_events(db, coupon_id)
    assert events[-1].event_type == "disqualified"


async def test_disqualify_unknown_winner(db):
    await _seed_pool(db, buyers=1, multiplier=1)
    d = await draws.run_draw(db, preselected_count=1, finalists_count=1, actor_ref="admin")

    with pytest.raises(NotFoundError):
        await draws.disqualify_winner(db, draw_id=d.id, winner_id=12345, reason="x", actor_ref="admin")


async def test_mark_winner_notified(db):
    await _seed_pool(db, buyers=1, multiplier=1)
    d = await draws.run_draw(db, preselected_count=1, finalists_count=1, actor_ref="admin")
    w, _ = (await draws.list_winners(db, draw_id=d.id))[0]

    w = await draws.mark_winner_notified(db, draw_id=d.id, winner_id=w.id)
    assert w.is_notified is True
