import asyncio
import logging

import sqlalchemy as sa

from .common.database import AsyncSessionLocal, init_db
from .inventory.model import Product

_logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {"name": "Wireless Headphones", "category": "Electronics", "stock": 50, "price": 2499.99, "discount_percentage": 10},
    {"name": "Mechanical Keyboard", "category": "Electronics", "stock": 80, "price": 3999.00},
    {"name": "USB-C Hub", "category": "Electronics", "stock": 120, "price": 1299.00},
    {"name": "Cotton T-Shirt", "category": "Clothing", "stock": 200, "price": 499.00, "discount_percentage": 20},
    {"name": "Running Shoes", "category": "Clothing", "stock": 35, "price": 3499.00},
    {"name": "Paperback Novel", "category": "Books", "stock": 150, "price": 299.00},
    {"name": "Steel Water Bottle", "category": "Home & Garden", "stock": 90, "price": 649.00},
]


async def seed_products() -> int:
    added = 0
    async with AsyncSessionLocal() as session:
        async with session.begin():
            for p in SAMPLE_PRODUCTS:
                # avoid duplicates by name
                res = await session.execute(sa.select(Product.id).where(Product.name == p["name"]))
                if res.first():
                    continue
                session.add(Product(**p))
                added += 1
    return added


async def amain():
    logging.basicConfig(level=logging.INFO)
    await init_db()
    added = await seed_products()
    _logger.info("Seed complete. Added %s products.", added)


if __name__ == "__main__":
    asyncio.run(amain())
