"""Gateway webhook consumer.

Applies ``payment.captured`` events to local payment and order state. The
entry point never raises: every delivery gets a ``WebhookResult`` so the
gateway always receives an acknowledgement and stops retrying.
"""
import enum
import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

import sqlalchemy as sa
from prometheus_client import Counter

from ..common.config import settings
from ..common.database import AsyncSessionLocal
from ..common.db import utcnow
from ..common.kafka_client import publish_event
from ..orders.model import Order, OrderStatus
from .gateway import verify_webhook_signature
from .model import Payment, PaymentStatus

_logger = logging.getLogger(__name__)

PAYMENT_CAPTURED = "payment.captured"

WEBHOOKS = Counter("payment_webhooks_total", "Payment webhook deliveries", ["outcome"])


class WebhookOutcome(str, enum.Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    INVALID_SIGNATURE = "invalid_signature"
    FAILED = "failed"


@dataclass(frozen=True)
class WebhookResult:
    outcome: WebhookOutcome
    message: str
    order_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (WebhookOutcome.PROCESSED, WebhookOutcome.IGNORED)


async def handle_webhook(payload: Union[bytes, str], signature: Optional[str]) -> WebhookResult:
    result = await _handle(payload, signature)
    WEBHOOKS.labels(outcome=result.outcome.value).inc()
    return result


async def _handle(payload: Union[bytes, str], signature: Optional[str]) -> WebhookResult:
    # Nothing in the body is looked at before the signature checks out.
    if not verify_webhook_signature(payload, signature, settings.RAZORPAY_WEBHOOK_SECRET):
        _logger.warning("Webhook rejected: invalid signature")
        return WebhookResult(WebhookOutcome.INVALID_SIGNATURE, "Invalid webhook signature!")

    try:
        event = json.loads(payload)
        event_type = event.get("event")
        if event_type != PAYMENT_CAPTURED:
            _logger.info("Webhook ignored | event=%s", event_type)
            return WebhookResult(WebhookOutcome.IGNORED, f"Event {event_type} ignored")

        entity = event["payload"]["payment"]["entity"]
        gateway_reference = entity["order_id"]
        return await _apply_capture(gateway_reference, entity.get("id"))
    except Exception:
        _logger.exception("Webhook processing failed")
        return WebhookResult(WebhookOutcome.FAILED, "Webhook processing failed")


async def _apply_capture(gateway_reference: str, gateway_payment_id: Optional[str]) -> WebhookResult:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.select(Payment).where(Payment.gateway_reference == gateway_reference))
            payment = res.scalar_one_or_none()
            if payment is None:
                _logger.warning("Webhook for unknown payment | gateway_reference=%s", gateway_reference)
                return WebhookResult(WebhookOutcome.NOT_FOUND, "Payment record not found")

            order = await session.get(Order, payment.order_id)
            if order is None:
                raise LookupError(f"order {payment.order_id} missing for payment {payment.id}")

            if order.status == OrderStatus.PAID:
                _logger.info("Duplicate capture ignored | order_id=%s payment_id=%s", order.id, payment.id)
                return WebhookResult(WebhookOutcome.PROCESSED, "Payment already applied", order.id)

            payment.status = PaymentStatus.SUCCESS
            if gateway_payment_id:
                payment.gateway_payment_id = gateway_payment_id

            if not order.status.can_transition(OrderStatus.PAID):
                _logger.warning(
                    "Captured payment for order that cannot be paid | order_id=%s status=%s",
                    order.id, order.status.value,
                )
                return WebhookResult(
                    WebhookOutcome.PROCESSED, f"Payment recorded; order is {order.status.value}", order.id
                )

            transitioned = await session.execute(
                sa.update(Order)
                .where(Order.id == order.id, Order.status == OrderStatus.CREATED)
                .values(status=OrderStatus.PAID, payment_id=payment.id, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            paid = bool(transitioned.rowcount)

    if paid:
        _logger.info("Payment successful for order | order_id=%s payment_id=%s", order.id, payment.id)
        await publish_event(
            "order.paid",
            order.id,
            {"order_id": order.id, "payment_id": payment.id, "amount": payment.amount},
        )
    return WebhookResult(WebhookOutcome.PROCESSED, "Webhook processed successfully", order.id)
