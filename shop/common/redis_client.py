import asyncio
import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis

from .config import settings

_logger = logging.getLogger(__name__)

_redis: Optional[Redis] = None
_lock = asyncio.Lock()


async def get_redis() -> Redis:
    global _redis
    if _redis is None:
        async with _lock:
            if _redis is None:
                try:
                    client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
                    # Validate connection quickly
                    await client.ping()
                    _redis = client
                    _logger.info("Connected to Redis at %s", settings.REDIS_URL)
                except Exception as e:
                    _logger.error("Failed to connect to Redis: %s", str(e))
                    _redis = None
                    raise
    return _redis


async def cache_get_json(key: str) -> Optional[Any]:
    if not settings.REDIS_ENABLED:
        return None
    try:
        r = await get_redis()
        raw = await r.get(key)
    except Exception as e:
        _logger.warning("Cache read failed | key=%s err=%s", key, e)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        _logger.warning("Dropping undecodable cache entry | key=%s", key)
        await cache_delete(key)
        return None


async def cache_set_json(key: str, value: Any, ttl: Optional[int] = None) -> None:
    if not settings.REDIS_ENABLED:
        return
    try:
        r = await get_redis()
        await r.set(key, json.dumps(value), ex=ttl or settings.PRODUCT_CACHE_TTL)
    except Exception as e:
        _logger.warning("Cache write failed | key=%s err=%s", key, e)


async def cache_delete(*keys: str) -> None:
    if not settings.REDIS_ENABLED or not keys:
        return
    try:
        r = await get_redis()
        await r.delete(*keys)
    except Exception as e:
        _logger.warning("Cache delete failed | keys=%s err=%s", keys, e)


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        try:
            await _redis.aclose()
        finally:
            _redis = None
