import asyncio
import json
import logging
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer

from .config import settings

_logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None
_producer_lock = asyncio.Lock()


async def start_producer(attempts: int = 5, backoff: float = 1.0) -> bool:
    """Connect the shared producer, retrying with exponential backoff.

    Meant to run as a background task at startup; requests never wait on it.
    Returns False when the broker stayed unreachable.
    """
    global _producer
    async with _producer_lock:
        if _producer is not None:
            return True
        for attempt in range(1, attempts + 1):  # ~ 1+2+4+8+16 ~= 31s by default
            producer = AIOKafkaProducer(
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                key_serializer=lambda k: k.encode("utf-8"),
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            )
            try:
                await producer.start()
            except Exception as e:
                _logger.warning("Kafka producer start failed | attempt=%s err=%s", attempt, e)
                await producer.stop()
                if attempt < attempts:
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 30.0)
                continue
            _producer = producer
            _logger.info("Kafka producer started | servers=%s", settings.KAFKA_BOOTSTRAP_SERVERS)
            return True
    _logger.error("Kafka producer unavailable; order events will be dropped")
    return False


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None


async def publish_event(event_type: str, key: str, payload: Dict[str, Any]) -> bool:
    """Publish an order lifecycle event. Returns False when the event was not sent.

    The state change the event describes is already committed when this runs,
    so broker problems are logged and reported, never raised. A producer that
    is not connected yet drops the event at once instead of stalling the caller.
    """
    if not settings.KAFKA_ENABLED:
        return False
    producer = _producer
    if producer is None:
        _logger.warning("Event dropped, producer not connected | type=%s key=%s", event_type, key)
        return False
    event = {"type": event_type, **payload}
    try:
        await asyncio.wait_for(
            producer.send_and_wait(settings.ORDER_EVENTS_TOPIC, key=key, value=event),
            timeout=settings.KAFKA_SEND_TIMEOUT,
        )
    except Exception as e:
        _logger.warning("Event publish failed | type=%s key=%s err=%r", event_type, key, e)
        return False
    _logger.info("Event published | type=%s key=%s topic=%s", event_type, key, settings.ORDER_EVENTS_TOPIC)
    return True
