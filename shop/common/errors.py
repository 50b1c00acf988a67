"""Error kinds and the result type returned by the shop workflows.

Domain failures are values, not exceptions: every workflow returns a
``Result`` that either carries the produced value or a ``Failure``. The HTTP
layer maps ``Failure.kind`` to a status code and a stable ``errorCode``.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(enum.Enum):
    EMPTY_CART = ("EMPTY_CART", 400)
    PRODUCT_NOT_FOUND = ("PRODUCT_NOT_FOUND", 404)
    INSUFFICIENT_STOCK = ("INSUFFICIENT_STOCK", 400)
    ORDER_NOT_FOUND = ("ORDER_NOT_FOUND", 404)
    INVALID_ORDER_STATE = ("INVALID_ORDER_STATE", 400)
    PAYMENT_RECORD_NOT_FOUND = ("PAYMENT_RECORD_NOT_FOUND", 404)
    SIGNATURE_VERIFICATION_FAILED = ("SIGNATURE_VERIFICATION_FAILED", 400)
    CART_ITEM_NOT_FOUND = ("CART_ITEM_NOT_FOUND", 404)
    CART_CHANGED = ("CART_CHANGED", 409)
    PRODUCT_ALREADY_EXISTS = ("PRODUCT_ALREADY_EXISTS", 409)
    VALIDATION_ERROR = ("VALIDATION_ERROR", 400)
    GATEWAY_ERROR = ("GATEWAY_ERROR", 502)
    INTERNAL_ERROR = ("INTERNAL_ERROR", 500)

    def __init__(self, code: str, http_status: int):
        self.code = code
        self.http_status = http_status


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def code(self) -> str:
        return self.kind.code


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, failure: Failure) -> "Result[T]":
        return cls(failure=failure)


def empty_cart() -> Failure:
    return Failure(ErrorKind.EMPTY_CART, "Cart is empty! Cannot create order.")


def product_not_found(product_id: str) -> Failure:
    return Failure(ErrorKind.PRODUCT_NOT_FOUND, f"Product not found: {product_id}", {"productId": product_id})


def insufficient_stock(product_id: str, name: str, available: int, requested: int) -> Failure:
    return Failure(
        ErrorKind.INSUFFICIENT_STOCK,
        f"Insufficient stock for product: {name}. Available: {available}, Required: {requested}",
        {"productId": product_id, "productName": name, "available": available, "requested": requested},
    )


def order_not_found(order_id: str) -> Failure:
    return Failure(ErrorKind.ORDER_NOT_FOUND, f"Order not found with id: {order_id}", {"orderId": order_id})
