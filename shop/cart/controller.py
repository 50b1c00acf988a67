from quart import Blueprint

from ..common import envelope
from ..common.validation import parse_body
from .schemas import CartItemAdd
from .service import add_item, clear_cart, get_cart, remove_item

bp = Blueprint("cart", __name__)


@bp.post("/cart/items")
async def cart_add():
    data = await parse_body(CartItemAdd)
    result = await add_item(data.user_id, data.product_id, data.quantity)
    return envelope.from_result(result, "Item added to cart.", lambda it: it.to_dict(), status=201)


@bp.get("/cart/<user_id>")
async def cart_get(user_id: str):
    items = await get_cart(user_id)
    return envelope.success([it.to_dict() for it in items], f"{len(items)} item(s) in cart.")


@bp.delete("/cart/<user_id>/items/<product_id>")
async def cart_remove(user_id: str, product_id: str):
    result = await remove_item(user_id, product_id)
    return envelope.from_result(result, "Item removed from cart.")


@bp.delete("/cart/<user_id>")
async def cart_clear(user_id: str):
    removed = await clear_cart(user_id)
    return envelope.success({"removed": removed}, "Cart cleared successfully")
