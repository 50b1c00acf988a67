import logging
from typing import Dict, List

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from ..common.database import AsyncSessionLocal
from ..common.errors import ErrorKind, Failure, Result, product_not_found
from ..common.redis_client import cache_delete, cache_get_json, cache_set_json
from .model import Product
from .schemas import ProductCreate, ProductUpdate

_logger = logging.getLogger(__name__)


def redis_product_key(product_id: str) -> str:
    return f"product:{product_id}:data"


def product_exists(product_id: str) -> Failure:
    return Failure(
        ErrorKind.PRODUCT_ALREADY_EXISTS, f"Product already exists: {product_id}", {"productId": product_id}
    )


async def create_product(data: ProductCreate) -> Result[Product]:
    async with AsyncSessionLocal() as session:
        if data.id is not None and await session.get(Product, data.id) is not None:
            return Result.fail(product_exists(data.id))
        product = Product(**data.model_dump(exclude_none=True))
        session.add(product)
        try:
            await session.commit()
        except IntegrityError:
            # Lost an insert race for the same id.
            await session.rollback()
            return Result.fail(product_exists(data.id))
    _logger.info("Product created | product_id=%s name=%s stock=%s", product.id, product.name, product.stock)
    return Result.success(product)


async def list_products(include_inactive: bool = False) -> List[Dict]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product).order_by(Product.created_at)
        if not include_inactive:
            stmt = stmt.where(Product.active.is_(True))
        res = await session.execute(stmt)
        return [p.to_dict() for p in res.scalars().all()]


async def get_product(product_id: str) -> Result[Dict]:
    cached = await cache_get_json(redis_product_key(product_id))
    if cached is not None:
        _logger.debug("Cache hit: product | product_id=%s", product_id)
        return Result.success(cached)
    async with AsyncSessionLocal() as session:
        product = await session.get(Product, product_id)
    if product is None or not product.active:
        return Result.fail(product_not_found(product_id))
    data = product.to_dict()
    await cache_set_json(redis_product_key(product_id), data)
    _logger.info("DB get product | product_id=%s (cache miss)", product_id)
    return Result.success(data)


async def update_product(product_id: str, data: ProductUpdate) -> Result[Product]:
    changes = data.model_dump(exclude_none=True)
    async with AsyncSessionLocal() as session:
        async with session.begin():
            product = await session.get(Product, product_id)
            if product is None or not product.active:
                return Result.fail(product_not_found(product_id))
            for name, value in changes.items():
                setattr(product, name, value)
    await cache_delete(redis_product_key(product_id))
    _logger.info("Product updated | product_id=%s fields=%s", product_id, sorted(changes))
    return Result.success(product)


async def set_stock(product_id: str, new_stock: int) -> Result[Product]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            product = await session.get(Product, product_id)
            if product is None:
                return Result.fail(product_not_found(product_id))
            product.stock = new_stock
    _logger.info("DB set stock | product_id=%s new_stock=%s", product_id, new_stock)
    await sync_cached_stock(product_id, new_stock)
    return Result.success(product)


async def deactivate_product(product_id: str) -> Result[Product]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            product = await session.get(Product, product_id)
            if product is None:
                return Result.fail(product_not_found(product_id))
            product.active = False
    await cache_delete(redis_product_key(product_id))
    _logger.info("Product deactivated | product_id=%s", product_id)
    return Result.success(product)


async def sync_cached_stock(product_id: str, stock: int) -> None:
    """Keep the cached product document in step with a committed stock change."""
    key = redis_product_key(product_id)
    cached = await cache_get_json(key)
    if cached is None:
        return
    cached["stock"] = stock
    cached["inStock"] = stock > 0
    await cache_set_json(key, cached)
