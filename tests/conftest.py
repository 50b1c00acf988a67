import hashlib
import hmac
import json
import os
import tempfile

# Settings are read at import time, so point them at throwaway backends first.
_TMP_DIR = tempfile.mkdtemp(prefix="shop-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'shop.db')}"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"

import httpx  # noqa: E402
import pytest  # noqa: E402
from fakeredis import aioredis as fake_aioredis  # noqa: E402

from shop.app import create_app  # noqa: E402
from shop.cart.service import add_item  # noqa: E402
from shop.common import redis_client  # noqa: E402
from shop.common.config import settings  # noqa: E402
from shop.common.database import drop_db, engine, init_db  # noqa: E402
from shop.inventory.schemas import ProductCreate  # noqa: E402
from shop.inventory.service import create_product  # noqa: E402
from shop.payments.gateway import RazorpayClient, set_gateway  # noqa: E402


@pytest.fixture(autouse=True)
async def database():
    await init_db()
    yield
    await drop_db()
    await engine.dispose()


@pytest.fixture(autouse=True)
async def fake_redis(monkeypatch):
    client = fake_aioredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_client, "_redis", client)
    yield client
    await client.flushall()


@pytest.fixture
def make_product():
    async def _make(product_id="P1", stock=5, price=100.0, name=None, **extra):
        result = await create_product(
            ProductCreate(id=product_id, name=name or f"Product {product_id}", price=price, stock=stock, **extra)
        )
        assert result.ok, result.failure
        return result.value

    return _make


@pytest.fixture
def fill_cart():
    async def _fill(user_id, *lines):
        for product_id, quantity in lines:
            result = await add_item(user_id, product_id, quantity)
            assert result.ok, result.failure

    return _fill


class GatewayStub:
    """Records gateway calls made through an httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": {"description": "rejected"}})
        body = json.loads(request.content)
        self.counter += 1
        return httpx.Response(
            200,
            json={
                "id": f"order_gw{self.counter}",
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            },
        )


@pytest.fixture
async def gateway():
    stub = GatewayStub()
    client = RazorpayClient(
        settings.RAZORPAY_KEY_ID,
        settings.RAZORPAY_KEY_SECRET,
        "https://gateway.test/v1",
        transport=httpx.MockTransport(stub.handler),
    )
    set_gateway(client)
    yield stub
    set_gateway(None)
    await client.aclose()


def sign(payload: bytes, secret: str = "whsec_test") -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def captured_event(gateway_reference: str, payment_id: str = "pay_123") -> bytes:
    return json.dumps(
        {
            "entity": "event",
            "event": "payment.captured",
            "payload": {
                "payment": {
                    "entity": {"id": payment_id, "order_id": gateway_reference, "status": "captured"}
                }
            },
        }
    ).encode()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def webhook():
    """Builds signed gateway webhook deliveries."""

    class _Webhook:
        sign = staticmethod(sign)
        captured = staticmethod(captured_event)

    return _Webhook
