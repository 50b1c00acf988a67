import json

import pytest

from shop.common import kafka_client
from shop.common.database import AsyncSessionLocal
from shop.orders.model import Order, OrderStatus
from shop.orders.service import cancel_order, create_order
from shop.payments.model import Payment, PaymentStatus
from shop.payments.service import create_payment_intent
from shop.payments.webhook import WebhookOutcome, handle_webhook


@pytest.fixture
def pending_payment(make_product, fill_cart, gateway):
    async def _create():
        await make_product("P1", stock=10, price=50.0)
        await fill_cart("u1", ("P1", 2))
        order = (await create_order("u1")).value
        intent = (await create_payment_intent(order.id)).value
        return order.id, intent

    return _create


async def load(order_id, payment_id):
    async with AsyncSessionLocal() as session:
        return await session.get(Order, order_id), await session.get(Payment, payment_id)


async def test_captured_event_marks_payment_and_order_paid(pending_payment, webhook):
    order_id, intent = await pending_payment()
    payload = webhook.captured(intent["gatewayReference"], "pay_abc")

    result = await handle_webhook(payload, webhook.sign(payload))

    assert result.outcome is WebhookOutcome.PROCESSED
    assert result.order_id == order_id
    order, payment = await load(order_id, intent["paymentId"])
    assert order.status is OrderStatus.PAID
    assert order.payment_id == payment.id
    assert payment.status is PaymentStatus.SUCCESS
    assert payment.gateway_payment_id == "pay_abc"


async def test_duplicate_delivery_is_applied_once(pending_payment, webhook, monkeypatch):
    published = []

    async def record(event_type, key, payload):
        published.append(event_type)
        return True

    monkeypatch.setattr("shop.payments.webhook.publish_event", record)
    order_id, intent = await pending_payment()
    payload = webhook.captured(intent["gatewayReference"])

    first = await handle_webhook(payload, webhook.sign(payload))
    second = await handle_webhook(payload, webhook.sign(payload))

    assert first.outcome is WebhookOutcome.PROCESSED
    assert second.outcome is WebhookOutcome.PROCESSED
    assert second.message == "Payment already applied"
    assert published == ["order.paid"]
    order, payment = await load(order_id, intent["paymentId"])
    assert order.status is OrderStatus.PAID
    assert payment.status is PaymentStatus.SUCCESS
    async with AsyncSessionLocal() as session:
        payments = (await session.execute(Payment.__table__.select())).all()
    assert len(payments) == 1


@pytest.mark.parametrize("signature", [None, "", "deadbeef", "é", "\udcff"])
async def test_bad_signature_changes_nothing(pending_payment, webhook, signature):
    order_id, intent = await pending_payment()
    payload = webhook.captured(intent["gatewayReference"])

    result = await handle_webhook(payload, signature)

    assert result.outcome is WebhookOutcome.INVALID_SIGNATURE
    order, payment = await load(order_id, intent["paymentId"])
    assert order.status is OrderStatus.CREATED
    assert payment.status is PaymentStatus.PENDING


async def test_signature_is_checked_before_parsing(webhook):
    result = await handle_webhook(b"not json at all", "bad")

    assert result.outcome is WebhookOutcome.INVALID_SIGNATURE


async def test_signature_from_other_secret_is_rejected(pending_payment, webhook):
    _, intent = await pending_payment()
    payload = webhook.captured(intent["gatewayReference"])

    result = await handle_webhook(payload, webhook.sign(payload, secret="someone-else"))

    assert result.outcome is WebhookOutcome.INVALID_SIGNATURE


async def test_other_events_are_ignored(pending_payment, webhook):
    order_id, intent = await pending_payment()
    payload = json.dumps(
        {"event": "payment.failed", "payload": {"payment": {"entity": {"order_id": intent["gatewayReference"]}}}}
    ).encode()

    result = await handle_webhook(payload, webhook.sign(payload))

    assert result.outcome is WebhookOutcome.IGNORED
    assert result.ok
    order, payment = await load(order_id, intent["paymentId"])
    assert order.status is OrderStatus.CREATED
    assert payment.status is PaymentStatus.PENDING


async def test_unknown_gateway_reference_reports_not_found(pending_payment, webhook):
    order_id, intent = await pending_payment()
    payload = webhook.captured("order_unknown")

    result = await handle_webhook(payload, webhook.sign(payload))

    assert result.outcome is WebhookOutcome.NOT_FOUND
    assert result.message == "Payment record not found"
    order, payment = await load(order_id, intent["paymentId"])
    assert order.status is OrderStatus.CREATED
    assert payment.status is PaymentStatus.PENDING


async def test_malformed_payload_is_reported_not_raised(webhook):
    payload = json.dumps({"event": "payment.captured", "payload": {}}).encode()

    result = await handle_webhook(payload, webhook.sign(payload))

    assert result.outcome is WebhookOutcome.FAILED
    assert result.message == "Webhook processing failed"


async def test_capture_for_cancelled_order_records_payment_only(pending_payment, webhook):
    order_id, intent = await pending_payment()
    await cancel_order(order_id)
    payload = webhook.captured(intent["gatewayReference"])

    result = await handle_webhook(payload, webhook.sign(payload))

    assert result.outcome is WebhookOutcome.PROCESSED
    order, payment = await load(order_id, intent["paymentId"])
    assert order.status is OrderStatus.CANCELLED
    assert payment.status is PaymentStatus.SUCCESS


async def test_paid_event_is_published(pending_payment, webhook, monkeypatch):
    sent = []

    class FakeProducer:
        async def send_and_wait(self, topic, key=None, value=None):
            sent.append((topic, key, value))

    monkeypatch.setattr(kafka_client.settings, "KAFKA_ENABLED", True)
    monkeypatch.setattr(kafka_client, "_producer", FakeProducer())
    order_id, intent = await pending_payment()
    sent.clear()
    payload = webhook.captured(intent["gatewayReference"])

    await handle_webhook(payload, webhook.sign(payload))

    assert sent == [
        (
            "order-events",
            order_id,
            {"type": "order.paid", "order_id": order_id, "payment_id": intent["paymentId"], "amount": 100.0},
        )
    ]
