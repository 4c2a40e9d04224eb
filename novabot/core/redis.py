"""Redis client lifecycle management."""

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()


def create_redis(url: str) -> redis.Redis:  # type: ignore[type-arg]
    """Create a Redis client. Connections are opened lazily."""
    return redis.from_url(url, decode_responses=True)


async def ping_redis(client: redis.Redis) -> bool:  # type: ignore[type-arg]
    """Check that Redis answers. Failures are logged, not raised."""
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis unreachable", error=str(e))
        return False
    return True


async def close_redis(client: redis.Redis | None) -> None:  # type: ignore[type-arg]
    """Close the Redis connection."""
    if client is not None:
        await client.aclose()
