"""
Redis client for the transition event stream.
Separated from business logic for clean architecture.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from admissions.core.config import get_settings
from admissions.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error("redis_connection_failed", url=settings.REDIS_URL, error=str(e))
            await client.aclose()
            return None
        _redis_client = client
        logger.info("redis_connected", url=settings.REDIS_URL)

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_redis_status() -> dict:
    """Redis connectivity summary for the health endpoint."""
    if not settings.REDIS_ENABLED:
        return {"status": "disabled"}

    client = await get_redis()
    if not client:
        return {"status": "unavailable"}

    try:
        length = await client.xlen(settings.EVENT_STREAM_KEY)
        return {"status": "connected", "stream": settings.EVENT_STREAM_KEY, "length": length}
    except (RedisError, OSError) as e:
        return {"status": "error", "error": str(e)}
