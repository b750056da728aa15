import redis

from app.core.config import settings


def get_redis_url():
    return settings.REDIS_URL


def get_redis_client():
    """Get Redis client for locking."""
    return redis.from_url(get_redis_url(), decode_responses=True)
