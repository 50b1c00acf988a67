from datetime import datetime, timezone
from typing import Any, Callable, Optional

from quart import jsonify

from .errors import Failure, Result


def _body(success: bool, message: str, data: Any = None, error_code: Optional[str] = None) -> dict:
    return {
        "success": success,
        "message": message,
        "data": data,
        "errorCode": error_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def success(data: Any = None, message: str = "OK", status: int = 200):
    return jsonify(_body(True, message, data)), status


def error(message: str, error_code: str, status: int, data: Any = None):
    return jsonify(_body(False, message, data, error_code)), status


def failure(fail: Failure):
    return error(fail.message, fail.code, fail.kind.http_status, fail.details or None)


def from_result(result: Result, message: str, serialize: Callable[[Any], Any] = lambda v: v, status: int = 200):
    if not result.ok:
        return failure(result.failure)
    return success(serialize(result.value), message, status)
