# eventvalidate/db/redis.py
import redis
from eventvalidate.core.config import settings


def get_redis_client():
    """
    Creates and returns a new Redis client instance.
    Connections are opened lazily on first command.
    """
    return redis.from_url(settings.REDIS_URL, decode_responses=True)


# Shared instance used by the one-time confirmation token store.
redis_client = get_redis_client()
