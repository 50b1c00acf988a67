from typing import Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .db import Base, utcnow
from ..cart.model import CartItem  # noqa: F401  (registers table)
from ..inventory.model import Product
from ..orders.model import Order, OrderItem  # noqa: F401
from ..payments.model import Payment  # noqa: F401


def _connect_args(url: str) -> dict:
    # Give concurrent SQLite writers time to queue for the write lock.
    if url.startswith("sqlite"):
        return {"timeout": 30}
    return {}


# Async SQLAlchemy engine and session factory
engine = create_async_engine(
    settings.DB_URL,
    future=True,
    echo=settings.DB_ECHO,
    connect_args=_connect_args(settings.DB_URL),
)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def reserve_stock(session: AsyncSession, product_id: str, quantity: int) -> Optional[Tuple[float, int]]:
    """Atomically decrement stock if enough is available.

    Runs as one conditional UPDATE so concurrent callers can never take the
    same units twice. Returns ``(price, remaining_stock)`` on success, None
    when the product is missing, inactive, or short of stock.
    """
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id, Product.active.is_(True), Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utcnow())
        .returning(Product.price, Product.stock)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    row = res.first()
    if row is None:
        return None
    return float(row[0]), int(row[1])


async def release_stock(session: AsyncSession, product_id: str, quantity: int) -> Optional[int]:
    """Atomically return units to stock. Returns the new stock, None if the product is gone."""
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity, updated_at=utcnow())
        .returning(Product.stock)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    row = res.first()
    return int(row[0]) if row else None
