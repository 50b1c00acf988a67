from quart import Blueprint, request

from ..common import envelope
from ..common.validation import parse_body
from .schemas import CheckoutRequest
from .service import cancel_order, create_order, get_order, list_orders

bp = Blueprint("orders", __name__)


def _order_dict(order):
    return order.to_dict()


@bp.post("/checkout")
async def checkout():
    data = await parse_body(CheckoutRequest)
    result = await create_order(data.user_id)
    return envelope.from_result(result, "Order placed successfully.", _order_dict, status=201)


@bp.get("/orders")
async def orders_list():
    orders = await list_orders(request.args.get("userId"))
    return envelope.success([o.to_dict() for o in orders], f"Found {len(orders)} order(s).")


@bp.get("/orders/<order_id>")
async def order_detail(order_id: str):
    result = await get_order(order_id)
    return envelope.from_result(result, "Order retrieved successfully.", _order_dict)


@bp.post("/orders/<order_id>/cancel")
async def order_cancel(order_id: str):
    result = await cancel_order(order_id)
    return envelope.from_result(result, "Order cancelled.", _order_dict)
