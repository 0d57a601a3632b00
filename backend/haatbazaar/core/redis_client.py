# haatbazaar/core/redis_client.py
# Shared async Redis client used for realtime notification fan-out.
import redis.asyncio as redis

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger

_redis_client: redis.Redis | None = None


async def connect_redis():
    """Connects to Redis when REDIS_URL is configured. Realtime fan-out is skipped otherwise."""
    global _redis_client
    if not settings.REDIS_URL:
        logger.warning("REDIS_URL not set; realtime notification delivery is disabled.")
        return
    if _redis_client is not None:
        return
    try:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        await client.ping()
        _redis_client = client
        logger.success(f"Connected to Redis at {settings.redis_display}.")
    except redis.RedisError as e:
        logger.critical(f"Failed to connect to Redis: {e}")
        raise RuntimeError(f"Failed to connect to Redis: {e}") from e


async def close_redis():
    global _redis_client
    if _redis_client is not None:
        logger.info("Closing Redis connection...")
        try:
            await _redis_client.aclose()
        finally:
            _redis_client = None


def get_redis_client() -> redis.Redis:
    if _redis_client is None:
        raise RuntimeError("Redis not connected. Ensure connect_redis() was called with REDIS_URL set.")
    return _redis_client
