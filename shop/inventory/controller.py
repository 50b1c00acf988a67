from quart import Blueprint, request

from ..common import envelope
from ..common.validation import parse_body
from .schemas import ProductCreate, ProductUpdate, StockUpdate
from .service import (
    create_product,
    deactivate_product,
    get_product,
    list_products,
    set_stock,
    update_product,
)

bp = Blueprint("inventory", __name__)


@bp.post("/products")
async def products_create():
    data = await parse_body(ProductCreate)
    result = await create_product(data)
    return envelope.from_result(result, "Product added successfully!", lambda p: p.to_dict(), 201)


@bp.get("/products")
async def products_list():
    include_inactive = request.args.get("includeInactive", "").lower() in {"1", "true", "yes"}
    items = await list_products(include_inactive=include_inactive)
    message = f"Successfully retrieved {len(items)} products." if items else "No products available at the moment."
    return envelope.success(items, message)


@bp.get("/products/<product_id>")
async def product_detail(product_id: str):
    result = await get_product(product_id)
    return envelope.from_result(result, "Product retrieved successfully.")


@bp.put("/products/<product_id>")
async def product_update(product_id: str):
    data = await parse_body(ProductUpdate)
    result = await update_product(product_id, data)
    return envelope.from_result(result, "Product updated successfully.", lambda p: p.to_dict())


@bp.put("/products/<product_id>/stock")
async def product_stock_put(product_id: str):
    data = await parse_body(StockUpdate)
    result = await set_stock(product_id, data.stock)
    return envelope.from_result(result, "Stock updated.", lambda p: {"productId": p.id, "stock": p.stock})


@bp.delete("/products/<product_id>")
async def product_deactivate(product_id: str):
    result = await deactivate_product(product_id)
    return envelope.from_result(result, "Product deactivated.", lambda p: p.to_dict())
