import logging
from dataclasses import dataclass
from typing import List, Optional

import sqlalchemy as sa
from prometheus_client import Counter

from ..cart.model import CartItem
from ..cart.service import load_cart
from ..common.database import AsyncSessionLocal, release_stock, reserve_stock
from ..common.db import utcnow
from ..common.errors import (
    ErrorKind,
    Failure,
    Result,
    empty_cart,
    insufficient_stock,
    order_not_found,
    product_not_found,
)
from ..common.kafka_client import publish_event
from ..inventory.model import Product
from ..inventory.service import sync_cached_stock
from .model import Order, OrderItem, OrderStatus

_logger = logging.getLogger(__name__)

ORDERS_CREATED = Counter("orders_created_total", "Orders created from carts")
CHECKOUT_FAILURES = Counter("checkout_failures_total", "Rejected checkouts", ["reason"])


@dataclass(frozen=True)
class _CartLine:
    item_id: int
    product_id: str
    quantity: int


class _StockTaken(Exception):
    """A concurrent checkout took the stock between validation and commit."""

    def __init__(self, product_id: str, requested: int):
        super().__init__(product_id)
        self.product_id = product_id
        self.requested = requested


class _CartChanged(Exception):
    """The validated cart lines were consumed or edited before commit."""


async def create_order(user_id: str) -> Result[Order]:
    """Turn the user's cart into a CREATED order.

    Validation runs over the whole cart before anything is written. The
    commit phase (stock decrements, order insert, cart delete) is a single
    transaction: either all of it becomes visible or none of it does.
    """
    validated = await _validate_cart(user_id)
    if not validated.ok:
        CHECKOUT_FAILURES.labels(reason=validated.failure.code).inc()
        _logger.warning("Checkout rejected | user_id=%s reason=%s", user_id, validated.failure.message)
        return Result.fail(validated.failure)
    lines = validated.value

    try:
        order, remaining = await _commit(user_id, lines)
    except _StockTaken as lost:
        failure = await _describe_shortage(lost.product_id, lost.requested)
        CHECKOUT_FAILURES.labels(reason=failure.code).inc()
        _logger.warning("Checkout lost stock race | user_id=%s product_id=%s", user_id, lost.product_id)
        return Result.fail(failure)
    except _CartChanged:
        failure = await _describe_cart_change(user_id)
        CHECKOUT_FAILURES.labels(reason=failure.code).inc()
        _logger.warning("Checkout lost cart race | user_id=%s reason=%s", user_id, failure.code)
        return Result.fail(failure)

    ORDERS_CREATED.inc()
    _logger.info("Order created | order_id=%s user_id=%s items=%s total=%s", order.id, user_id, len(order.items), order.total_amount)
    for product_id, stock in remaining.items():
        await sync_cached_stock(product_id, stock)
    await publish_event(
        "order.created",
        order.id,
        {
            "order_id": order.id,
            "user_id": user_id,
            "total_amount": order.total_amount,
            "items": [it.to_dict() for it in order.items],
        },
    )
    return Result.success(order)


async def _validate_cart(user_id: str) -> Result[List[_CartLine]]:
    async with AsyncSessionLocal() as session:
        cart_items: List[CartItem] = await load_cart(session, user_id)
        if not cart_items:
            return Result.fail(empty_cart())
        for item in cart_items:
            product = await session.get(Product, item.product_id)
            if product is None or not product.active:
                return Result.fail(product_not_found(item.product_id))
            if product.stock < item.quantity:
                return Result.fail(insufficient_stock(product.id, product.name, product.stock, item.quantity))
        return Result.success([_CartLine(it.id, it.product_id, it.quantity) for it in cart_items])


async def _commit(user_id: str, lines: List[_CartLine]):
    remaining = {}
    async with AsyncSessionLocal() as session:
        async with session.begin():
            # Consume exactly the validated lines; a concurrent checkout of the
            # same cart finds them gone and rolls back.
            for line in lines:
                res = await session.execute(
                    sa.delete(CartItem)
                    .where(CartItem.id == line.item_id, CartItem.quantity == line.quantity)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount != 1:
                    raise _CartChanged(user_id)

            order_items = []
            total = 0.0
            for position, line in enumerate(lines):
                reserved = await reserve_stock(session, line.product_id, line.quantity)
                if reserved is None:
                    raise _StockTaken(line.product_id, line.quantity)
                price, stock_left = reserved
                order_items.append(
                    OrderItem(position=position, product_id=line.product_id, quantity=line.quantity, unit_price=price)
                )
                total += price * line.quantity
                remaining[line.product_id] = stock_left

            order = Order(user_id=user_id, status=OrderStatus.CREATED, total_amount=total, items=order_items)
            session.add(order)
    return order, remaining


async def _describe_cart_change(user_id: str) -> Failure:
    async with AsyncSessionLocal() as session:
        cart_items = await load_cart(session, user_id)
    if not cart_items:
        return empty_cart()
    return Failure(
        ErrorKind.CART_CHANGED,
        "Cart changed during checkout, please review it and retry.",
        {"userId": user_id},
    )


async def _describe_shortage(product_id: str, requested: int) -> Failure:
    async with AsyncSessionLocal() as session:
        product = await session.get(Product, product_id)
    if product is None or not product.active:
        return product_not_found(product_id)
    return insufficient_stock(product.id, product.name, product.stock, requested)


async def get_order(order_id: str) -> Result[Order]:
    async with AsyncSessionLocal() as session:
        order = await session.get(Order, order_id)
    if order is None:
        return Result.fail(order_not_found(order_id))
    return Result.success(order)


async def list_orders(user_id: Optional[str] = None) -> List[Order]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).order_by(Order.created_at.desc())
        if user_id:
            stmt = stmt.where(Order.user_id == user_id)
        res = await session.execute(stmt)
        return list(res.scalars().all())


async def cancel_order(order_id: str) -> Result[Order]:
    """Move an order to CANCELLED and put its units back on the shelf."""
    restored = {}
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = await session.get(Order, order_id)
            if order is None:
                return Result.fail(order_not_found(order_id))
            previous = order.status
            if not previous.can_transition(OrderStatus.CANCELLED):
                return Result.fail(
                    Failure(
                        ErrorKind.INVALID_ORDER_STATE,
                        f"Order {order_id} cannot be cancelled from status {previous.value}",
                        {"orderId": order_id, "status": previous.value},
                    )
                )
            # Conditional on the status we read, so a racing cancel restores stock once.
            res = await session.execute(
                sa.update(Order)
                .where(Order.id == order_id, Order.status == previous)
                .values(status=OrderStatus.CANCELLED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if not res.rowcount:
                return Result.fail(
                    Failure(
                        ErrorKind.INVALID_ORDER_STATE,
                        f"Order {order_id} changed status concurrently",
                        {"orderId": order_id},
                    )
                )
            for item in order.items:
                stock = await release_stock(session, item.product_id, item.quantity)
                if stock is not None:
                    restored[item.product_id] = stock
        await session.refresh(order)

    _logger.info("Order cancelled | order_id=%s previous_status=%s", order_id, previous.value)
    for product_id, stock in restored.items():
        await sync_cached_stock(product_id, stock)
    await publish_event("order.cancelled", order_id, {"order_id": order_id, "previous_status": previous.value})
    return Result.success(order)
