import json

import httpx
import pytest
from sqlalchemy import select

from sweepstakes.core.config import settings
from sweepstakes.core.errors import ValidationError
from sweepstakes.integrations.document_validation_client import DocumentValidationClient
from sweepstakes.integrations.notifier_client import NotifierClient
from sweepstakes.models.draw import DrawWinner
from sweepstakes.models.notification import NOTIFY_FAILED, NOTIFY_SENT, NotificationLog
from sweepstakes.models.purchase import PURCHASE_APPROVED, PURCHASE_PENDING
from sweepstakes.services import approvals, draws, notifications, purchases
from tests.factories import approved_purchase, make_product, make_serial, submit_purchase

NOTIFIER_URL = "http://notifier.test/messages"
VALIDATION_URL = "http://validation.test/check"


def _notifier(status_code: int = 200, sent: list | None = None) -> NotifierClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if sent is not None:
            sent.append((request.headers.get("Authorization"), json.loads(request.content)))
        return httpx.Response(status_code, json={"id": "msg-1"})

    return NotifierClient(base_url=NOTIFIER_URL, token="notifier-token", transport=httpx.MockTransport(handler))


def _validator(status_code: int, body: dict) -> DocumentValidationClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body)

    return DocumentValidationClient(base_url=VALIDATION_URL, token="v", transport=httpx.MockTransport(handler))


async def _logs(db) -> list[NotificationLog]:
    return list((await db.execute(select(NotificationLog).order_by(NotificationLog.id))).scalars().all())


async def test_approval_notifications_are_delivered(db):
    product = await make_product(db, coupon_multiplier=2)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")
    sent: list = []

    p, issued = await approvals.approve(db, purchase_id=p.id, reviewer_ref="r", notifier=_notifier(sent=sent))

    logs = await _logs(db)
    assert {n.status for n in logs} == {NOTIFY_SENT}
    assert all(n.sent_at is not None for n in logs)
    assert [body["channel"] for _, body in sent] == ["EMAIL", "WHATSAPP"]
    auth, email = sent[0]
    assert auth == "Bearer notifier-token"
    assert email["to"] == "ana@example.com"
    assert all(c.code in email["body"] for c in issued)


async def test_delivery_failure_does_not_undo_approval(db, session_factory):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")
    purchase_id = p.id

    p, _ = await approvals.approve(db, purchase_id=purchase_id, reviewer_ref="r", notifier=_notifier(500))
    assert p.status == PURCHASE_APPROVED

    logs = await _logs(db)
    assert {n.status for n in logs} == {NOTIFY_FAILED}
    assert all(n.retry_count == 1 and "500" in n.error_message for n in logs)
    await db.close()

    async with session_factory() as s:
        stored = await purchases.get_purchase(s, purchase_id)
        assert stored.status == PURCHASE_APPROVED

    async with session_factory() as s:
        retried = await notifications.retry_failed(s, limit=10, notifier=_notifier())
        assert len(retried) == 2
        assert {n.status for n in await _logs(s)} == {NOTIFY_SENT}


async def test_unexpected_notifier_error_is_recorded(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")

    def handler(request: httpx.Request) -> httpx.Response:
        raise KeyError("to")

    broken = NotifierClient(base_url=NOTIFIER_URL, token="t", transport=httpx.MockTransport(handler))
    p, issued = await approvals.approve(db, purchase_id=p.id, reviewer_ref="r", notifier=broken)

    assert p.status == PURCHASE_APPROVED
    assert len(issued) == 2
    logs = await _logs(db)
    assert {n.status for n in logs} == {NOTIFY_FAILED}
    assert all(n.retry_count == 1 and n.error_message for n in logs)


async def test_retry_skips_exhausted_rows(db, monkeypatch):
    monkeypatch.setattr(settings, "NOTIFY_MAX_RETRIES", 1)
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")
    await approvals.approve(db, purchase_id=p.id, reviewer_ref="r", notifier=_notifier(502))

    retried = await notifications.retry_failed(db, limit=10, notifier=_notifier())

    assert retried == []


async def test_without_notifier_rows_stay_pending(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    await approved_purchase(db, "TV-1")

    pending = await notifications.list_notifications(db, status="pending", purchase_id=None, limit=10, offset=0)
    assert len(pending) == 2


async def test_winner_notifications_mark_winners(db):
    product = await make_product(db, coupon_multiplier=1)
    for i in range(3):
        await make_serial(db, f"TV-{i}", product)
        await approved_purchase(db, f"TV-{i}", document_number=f"D{i}", email=f"w{i}@example.com")

    d = await draws.run_draw(db, preselected_count=2, finalists_count=1, actor_ref="admin", notifier=_notifier())

    winner_logs = [n for n in await _logs(db) if n.related_winner_id is not None]
    # one message pair per drawn coupon: the finalist at its highest tier, the other as preselected
    assert len(winner_logs) == 4
    assert {n.template_key for n in winner_logs} == {"draw_finalist", "draw_preselected"}
    assert {n.status for n in winner_logs} == {NOTIFY_SENT}

    rows = (await db.execute(select(DrawWinner).where(DrawWinner.draw_id == d.id))).scalars().all()
    notified_ids = {n.related_winner_id for n in winner_logs}
    assert {w.id for w in rows if w.is_notified} == notified_ids


async def test_request_validation_stores_advisory_result(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")

    p = await purchases.request_validation(
        db, purchase_id=p.id, client=_validator(200, {"is_valid": True, "notes": "Document matches"})
    )

    assert p.validation_is_valid is True
    assert p.validation_notes == "Document matches"
    assert p.validated_at is not None
    assert p.status == PURCHASE_PENDING


async def test_request_validation_failure_is_recorded(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")

    p = await purchases.request_validation(db, purchase_id=p.id, client=_validator(503, {"error": "down"}))

    assert p.validation_is_valid is None
    assert p.validation_notes.startswith("Validation request failed")


async def test_request_validation_requires_configuration(db):
    product = await make_product(db)
    await make_serial(db, "TV-1", product)
    p = await submit_purchase(db, "TV-1")

    with pytest.raises(ValidationError):
        await purchases.request_validation(db, purchase_id=p.id, client=DocumentValidationClient(base_url=""))


async def test_positive_validation_can_auto_approve(db, monkeypatch):
    monkeypatch.setattr(settings, "AUTO_APPROVE_VALIDATED", True)
    product = await make_product(db, coupon_multiplier=2)
    await make_serial(db, "TV-1", product)
    await make_serial(db, "TV-2", product)
    p1 = await submit_purchase(db, "TV-1")
    p2 = await submit_purchase(db, "TV-2", document_number="555")

    p1 = await purchases.attach_validation(db, purchase_id=p1.id, is_valid=True, notes="ok")
    p2 = await purchases.attach_validation(db, purchase_id=p2.id, is_valid=False, notes="Name mismatch")

    assert p1.status == PURCHASE_APPROVED
    assert p1.reviewer_ref == purchases.AUTO_VALIDATION_REVIEWER
    assert p1.coupons_issued_at is not None
    assert p2.status == PURCHASE_PENDING
