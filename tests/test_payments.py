import json

import pytest

from shop.common.database import AsyncSessionLocal
from shop.common.errors import ErrorKind
from shop.orders.model import Order
from shop.orders.service import cancel_order, create_order
from shop.payments.gateway import verify_webhook_signature
from shop.payments.model import Payment, PaymentStatus
from shop.payments.service import create_payment_intent, to_minor_units


@pytest.fixture
def placed_order(make_product, fill_cart):
    async def _place(price=100.0, quantity=3, user_id="u1"):
        await make_product("P1", stock=10, price=price)
        await fill_cart(user_id, ("P1", quantity))
        return (await create_order(user_id)).value

    return _place


@pytest.mark.parametrize(
    "amount, expected",
    [(300.0, 30000), (19.99, 1999), (0.1, 10), (10.005, 1000), (1234.5, 123450)],
)
def test_minor_units_truncate(amount, expected):
    assert to_minor_units(amount) == expected


async def test_intent_creates_pending_payment_and_links_order(placed_order, gateway):
    order = await placed_order()

    result = await create_payment_intent(order.id)

    assert result.ok
    intent = result.value
    assert intent["gatewayReference"] == "order_gw1"
    assert intent["amount"] == 30000
    assert intent["currency"] == "INR"

    sent = json.loads(gateway.requests[0].content)
    assert sent == {"amount": 30000, "currency": "INR", "receipt": order.id}
    assert gateway.requests[0].url.path == "/v1/orders"
    assert gateway.requests[0].headers["Authorization"].startswith("Basic ")

    async with AsyncSessionLocal() as session:
        payment = await session.get(Payment, intent["paymentId"])
        stored_order = await session.get(Order, order.id)
    assert payment.status is PaymentStatus.PENDING
    assert payment.amount == 300.0
    assert payment.gateway_reference == "order_gw1"
    assert stored_order.payment_id == payment.id


async def test_intent_is_created_once_per_order(placed_order, gateway):
    order = await placed_order()

    first = await create_payment_intent(order.id)
    second = await create_payment_intent(order.id)

    assert len(gateway.requests) == 1
    assert second.value["paymentId"] == first.value["paymentId"]
    assert second.value["gatewayReference"] == first.value["gatewayReference"]


async def test_intent_for_unknown_order(gateway):
    result = await create_payment_intent("missing")

    assert result.failure.kind is ErrorKind.ORDER_NOT_FOUND
    assert gateway.requests == []


async def test_intent_requires_created_order(placed_order, gateway):
    order = await placed_order()
    await cancel_order(order.id)

    result = await create_payment_intent(order.id)

    assert result.failure.kind is ErrorKind.INVALID_ORDER_STATE
    assert gateway.requests == []


async def test_gateway_error_persists_nothing(placed_order, gateway):
    order = await placed_order()
    gateway.status_code = 503

    result = await create_payment_intent(order.id)

    assert result.failure.kind is ErrorKind.GATEWAY_ERROR
    async with AsyncSessionLocal() as session:
        stored_order = await session.get(Order, order.id)
    assert stored_order.payment_id is None


def test_signature_verification_rejects_forged_or_missing():
    payload = b'{"event":"payment.captured"}'
    forged = "e4b8cb4b4d3fe7d9b5f4cb2ac3f4bf7e59e4b5e0a4e1a2a4c4d2c3b2e1f0a9b8"

    assert not verify_webhook_signature(payload, forged, "whsec_test")
    assert not verify_webhook_signature(payload, None, "whsec_test")
    assert not verify_webhook_signature(payload, "abc", "")


def test_signature_verification_accepts_matching_hmac(webhook):
    payload = b'{"event":"payment.captured"}'

    assert verify_webhook_signature(payload, webhook.sign(payload), "whsec_test")
    assert verify_webhook_signature(payload.decode(), webhook.sign(payload), "whsec_test")
    assert not verify_webhook_signature(payload + b" ", webhook.sign(payload), "whsec_test")
