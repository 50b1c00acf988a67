import asyncio
import logging
import os
import time

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import ValidationError
from quart import Quart, jsonify, request
from werkzeug.exceptions import HTTPException

from .cart.controller import bp as cart_bp
from .common import envelope
from .common.config import settings
from .common.database import init_db
from .common.errors import ErrorKind
from .common.kafka_client import close_producer, start_producer
from .common.redis_client import close_redis
from .common.validation import InvalidBody
from .inventory.controller import bp as inventory_bp
from .orders.controller import bp as orders_bp
from .payments.controller import bp as payments_bp
from .payments.gateway import close_gateway
from .seed import seed_products

log = logging.getLogger(__name__)

# Get instance ID from environment
INSTANCE_ID = os.getenv("INSTANCE_ID", "unknown")

REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

# Collapse ids so metric label cardinality stays bounded.
_ENDPOINT_PREFIXES = (
    ("/products/", "/products/<id>"),
    ("/cart/", "/cart/<user>"),
    ("/orders/", "/orders/<id>"),
    ("/payments/", "/payments/<order>"),
)


def _normalize_endpoint(path: str) -> str:
    for prefix, label in _ENDPOINT_PREFIXES:
        if path.startswith(prefix):
            return label
    return path


def create_app() -> Quart:
    app = Quart(__name__)

    app.register_blueprint(inventory_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)

    @app.before_request
    async def before_request():
        request._start_time = time.time()
        log.info(f"[Instance {INSTANCE_ID}] {request.method} {request.path}")

    @app.after_request
    async def after_request(response):
        try:
            if hasattr(request, "_start_time"):
                duration = time.time() - request._start_time
                endpoint = _normalize_endpoint(request.path)
                REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status=str(response.status_code)
                ).inc()
                response.headers['X-Instance-ID'] = INSTANCE_ID
        except Exception as e:
            log.error(f"Error recording metrics: {e}")
        return response

    @app.errorhandler(ValidationError)
    async def handle_validation_error(error: ValidationError):
        fields = {".".join(str(p) for p in err["loc"]): err["msg"] for err in error.errors()}
        log.warning("Validation error | path=%s fields=%s", request.path, fields)
        kind = ErrorKind.VALIDATION_ERROR
        return envelope.error(
            "Validation failed. Please check your input and try again.", kind.code, kind.http_status, fields
        )

    @app.errorhandler(InvalidBody)
    async def handle_invalid_body(error: InvalidBody):
        kind = ErrorKind.VALIDATION_ERROR
        return envelope.error(str(error), kind.code, kind.http_status)

    @app.errorhandler(HTTPException)
    async def handle_http_exception(error: HTTPException):
        return envelope.error(error.description or error.name, error.name.upper().replace(" ", "_"), error.code)

    @app.errorhandler(Exception)
    async def handle_unexpected(error: Exception):
        log.exception("Unexpected error | path=%s", request.path)
        kind = ErrorKind.INTERNAL_ERROR
        return envelope.error(
            "An unexpected error occurred. Please try again later or contact support if the problem persists.",
            kind.code,
            kind.http_status,
        )

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL.upper())
        log.info("Initializing database...")
        await init_db()
        if settings.SEED_DEMO_DATA:
            added = await seed_products()
            log.info("Demo catalog seeded | added=%s", added)
        log.info("Database ready.")
        if settings.KAFKA_ENABLED:
            # Events are dropped until this connects.
            app._kafka_startup = asyncio.create_task(start_producer())
            log.info("Kafka producer connecting in background.")

    @app.after_serving
    async def shutdown():
        task = getattr(app, "_kafka_startup", None)
        if task is not None and not task.done():
            task.cancel()
        await close_gateway()
        await close_producer()
        await close_redis()
        log.info("Shutdown complete.")

    return app
