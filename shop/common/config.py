import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (SQLite file by default, any async SQLAlchemy URL works)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:///./shop.db")
    DB_ECHO: bool = _get_bool("DB_ECHO", False)
    SEED_DEMO_DATA: bool = _get_bool("SEED_DEMO_DATA", False)

    # Redis product cache
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    REDIS_ENABLED: bool = _get_bool("REDIS_ENABLED", True)
    PRODUCT_CACHE_TTL: int = int(os.getenv("PRODUCT_CACHE_TTL", "300"))

    # Kafka order events
    KAFKA_ENABLED: bool = _get_bool("KAFKA_ENABLED", True)
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "order-events")
    KAFKA_SEND_TIMEOUT: float = float(os.getenv("KAFKA_SEND_TIMEOUT", "5"))

    # Payment gateway (Razorpay)
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")
    RAZORPAY_WEBHOOK_SECRET: str = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
    RAZORPAY_BASE_URL: str = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")
    GATEWAY_TIMEOUT: float = float(os.getenv("GATEWAY_TIMEOUT", "10"))
    PAYMENT_CURRENCY: str = os.getenv("PAYMENT_CURRENCY", "INR")


settings = Settings()
