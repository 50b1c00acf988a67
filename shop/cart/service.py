import logging
from typing import List

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.database import AsyncSessionLocal
from ..common.errors import ErrorKind, Failure, Result, product_not_found
from ..inventory.model import Product
from .model import CartItem

_logger = logging.getLogger(__name__)


async def load_cart(session: AsyncSession, user_id: str) -> List[CartItem]:
    res = await session.execute(
        sa.select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.id)
    )
    return list(res.scalars().all())


async def get_cart(user_id: str) -> List[CartItem]:
    async with AsyncSessionLocal() as session:
        return await load_cart(session, user_id)


async def add_item(user_id: str, product_id: str, quantity: int) -> Result[CartItem]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            product = await session.get(Product, product_id)
            if product is None or not product.active:
                return Result.fail(product_not_found(product_id))
            # Merge into the existing (user, product) row in one statement.
            res = await session.execute(
                sa.update(CartItem)
                .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
                .values(quantity=CartItem.quantity + quantity)
                .returning(CartItem.id)
                .execution_options(synchronize_session=False)
            )
            existing_id = res.scalar_one_or_none()
            if existing_id is None:
                item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
                session.add(item)
            else:
                item = await session.get(CartItem, existing_id, populate_existing=True)
    _logger.info("Cart item added | user_id=%s product_id=%s qty=%s total_qty=%s", user_id, product_id, quantity, item.quantity)
    return Result.success(item)


async def remove_item(user_id: str, product_id: str) -> Result[None]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(
                sa.delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
            )
            removed = res.rowcount or 0
    if not removed:
        return Result.fail(
            Failure(
                ErrorKind.CART_ITEM_NOT_FOUND,
                f"Product {product_id} is not in the cart.",
                {"userId": user_id, "productId": product_id},
            )
        )
    _logger.info("Cart item removed | user_id=%s product_id=%s", user_id, product_id)
    return Result.success(None)


async def clear_cart(user_id: str) -> int:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            res = await session.execute(sa.delete(CartItem).where(CartItem.user_id == user_id))
            removed = res.rowcount or 0
    _logger.info("Cart cleared | user_id=%s removed=%s", user_id, removed)
    return removed
