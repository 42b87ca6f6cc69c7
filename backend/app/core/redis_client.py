"""Process-wide Redis connection backing the per-table locks."""

import redis.asyncio as redis

from backend.app.core.config import settings


redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    global redis_client
    redis_client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        health_check_interval=30,
    )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is None:
        return
    await redis_client.aclose()
    redis_client = None
