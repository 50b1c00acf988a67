import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from ..common.config import settings

_logger = logging.getLogger(__name__)


class GatewayError(Exception):
    pass


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str


class RazorpayClient:
    """Thin async client for the gateway's Orders API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    async def create_order(self, amount_minor: int, currency: str, receipt: str) -> GatewayOrder:
        try:
            resp = await self._client.post(
                "/orders",
                json={"amount": amount_minor, "currency": currency, "receipt": receipt},
            )
            resp.raise_for_status()
            data = resp.json()
            order = GatewayOrder(id=str(data["id"]), amount=int(data["amount"]), currency=str(data["currency"]))
        except httpx.HTTPStatusError as e:
            _logger.error("Gateway rejected order | receipt=%s status=%s", receipt, e.response.status_code)
            raise GatewayError(f"gateway returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            _logger.error("Gateway unreachable | receipt=%s err=%s", receipt, e)
            raise GatewayError("gateway unreachable") from e
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError("malformed gateway response") from e
        _logger.info("Gateway order created | receipt=%s gateway_order_id=%s amount=%s", receipt, order.id, order.amount)
        return order

    async def aclose(self) -> None:
        await self._client.aclose()


def verify_webhook_signature(payload: Union[bytes, str], signature: Optional[str], secret: str) -> bool:
    """Check ``signature`` is the hex HMAC-SHA256 of the raw payload under ``secret``."""
    if not signature or not secret:
        return False
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    # Bytes on both sides: compare_digest rejects non-ASCII str input with TypeError.
    given = signature.strip().encode("utf-8", "surrogateescape")
    return hmac.compare_digest(expected.encode("ascii"), given)


_gateway: Optional[RazorpayClient] = None


def get_gateway() -> RazorpayClient:
    global _gateway
    if _gateway is None:
        _gateway = RazorpayClient(
            settings.RAZORPAY_KEY_ID,
            settings.RAZORPAY_KEY_SECRET,
            settings.RAZORPAY_BASE_URL,
            timeout=settings.GATEWAY_TIMEOUT,
        )
    return _gateway


def set_gateway(client: Optional[RazorpayClient]) -> None:
    global _gateway
    _gateway = client


async def close_gateway() -> None:
    global _gateway
    if _gateway is not None:
        try:
            await _gateway.aclose()
        finally:
            _gateway = None
