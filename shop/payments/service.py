import logging
from decimal import Decimal
from typing import Dict

import sqlalchemy as sa

from ..common.config import settings
from ..common.database import AsyncSessionLocal
from ..common.db import utcnow
from ..common.errors import ErrorKind, Failure, Result, order_not_found
from ..orders.model import Order, OrderStatus
from .gateway import GatewayError, GatewayOrder, get_gateway
from .model import Payment, PaymentStatus

_logger = logging.getLogger(__name__)


class _OrderChanged(Exception):
    pass


def to_minor_units(amount: float) -> int:
    # Truncates, e.g. 10.005 -> 1000; str() keeps 19.99 from becoming 1998.
    return int(Decimal(str(amount)) * 100)


def _intent(order_id: str, payment: Payment, amount_minor: int, currency: str) -> Dict:
    return {
        "orderId": order_id,
        "paymentId": payment.id,
        "gatewayReference": payment.gateway_reference,
        "amount": amount_minor,
        "currency": currency,
    }


async def create_payment_intent(order_id: str) -> Result[Dict]:
    """Bind a CREATED order to a gateway order, at most once per order."""
    async with AsyncSessionLocal() as session:
        order = await session.get(Order, order_id)
        if order is None:
            return Result.fail(order_not_found(order_id))
        if order.status != OrderStatus.CREATED:
            return Result.fail(
                Failure(
                    ErrorKind.INVALID_ORDER_STATE,
                    "Order already processed or cancelled",
                    {"orderId": order_id, "status": order.status.value},
                )
            )
        if order.payment_id is not None:
            existing = await session.get(Payment, order.payment_id)
            if existing is not None and existing.status == PaymentStatus.PENDING:
                _logger.info("Reusing pending payment intent | order_id=%s payment_id=%s", order_id, existing.id)
                return Result.success(_intent(order_id, existing, to_minor_units(existing.amount), existing.currency))

    amount_minor = to_minor_units(order.total_amount)
    try:
        gateway_order = await get_gateway().create_order(amount_minor, settings.PAYMENT_CURRENCY, order_id)
    except GatewayError as e:
        return Result.fail(
            Failure(ErrorKind.GATEWAY_ERROR, "Payment gateway is unavailable, please retry.", {"reason": str(e)})
        )

    try:
        payment = await _record_pending_payment(order, gateway_order)
    except _OrderChanged:
        return Result.fail(
            Failure(
                ErrorKind.INVALID_ORDER_STATE,
                "Order changed while the payment was being created",
                {"orderId": order_id},
            )
        )

    _logger.info(
        "Payment intent created | order_id=%s payment_id=%s gateway_reference=%s amount_minor=%s",
        order_id, payment.id, payment.gateway_reference, gateway_order.amount,
    )
    return Result.success(_intent(order_id, payment, gateway_order.amount, gateway_order.currency))


async def _record_pending_payment(order: Order, gateway_order: GatewayOrder) -> Payment:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            payment = Payment(
                order_id=order.id,
                amount=order.total_amount,
                currency=gateway_order.currency,
                status=PaymentStatus.PENDING,
                gateway_reference=gateway_order.id,
            )
            session.add(payment)
            await session.flush()
            # Link only while the order is still fresh and holds the payment we saw.
            res = await session.execute(
                sa.update(Order)
                .where(Order.id == order.id, Order.status == OrderStatus.CREATED, Order.payment_id == order.payment_id)
                .values(payment_id=payment.id, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if not res.rowcount:
                raise _OrderChanged(order.id)
    return payment
