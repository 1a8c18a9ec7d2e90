"""
Redis connection helpers for the work queue.

Resolves one Redis connection from the configured URL so that the API,
scheduler and workers all talk to the same queue backend.
"""

from functools import lru_cache

import redis

from chainflow.config.settings import get_settings


@lru_cache(maxsize=1)
def get_redis_connection() -> redis.Redis:
    """Return the shared Redis client used by rq producers and workers."""
    settings = get_settings()
    return redis.Redis.from_url(settings.redis_url)
