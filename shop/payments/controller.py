from quart import Blueprint, request

from ..common import envelope
from ..common.errors import ErrorKind
from .service import create_payment_intent
from .webhook import WebhookOutcome, handle_webhook

bp = Blueprint("payments", __name__)

SIGNATURE_HEADER = "X-Razorpay-Signature"


@bp.post("/payments/<order_id>")
async def payment_create(order_id: str):
    result = await create_payment_intent(order_id)
    return envelope.from_result(result, "Payment intent created.")


@bp.post("/webhook/payment-events")
async def payment_webhook():
    payload = await request.get_data()
    result = await handle_webhook(payload, request.headers.get(SIGNATURE_HEADER))
    data = {"outcome": result.outcome.value, "orderId": result.order_id}
    if result.ok:
        return envelope.success(data, result.message)
    if result.outcome is WebhookOutcome.INVALID_SIGNATURE:
        kind = ErrorKind.SIGNATURE_VERIFICATION_FAILED
        return envelope.error(result.message, kind.code, kind.http_status, data)
    # Acknowledge anyway so the gateway does not keep redelivering.
    kind = ErrorKind.PAYMENT_RECORD_NOT_FOUND if result.outcome is WebhookOutcome.NOT_FOUND else ErrorKind.INTERNAL_ERROR
    return envelope.error(result.message, kind.code, 200, data)
