"""Optional Redis cache for tier, model, access and quota reference data.

Entries are namespaced by a generation number. Every administrative write
bumps the generation, which orphans all previous entries at once; the TTL
only bounds how long orphans linger. When Redis is not configured, or errors,
callers fall through to the database.
"""
import json
import logging
from typing import Any, Callable

import redis

from tierquota.config import settings

logger = logging.getLogger(__name__)

GENERATION_KEY = "tierquota:policy:generation"

redis_client: redis.Redis | None = None
redis_available: bool | None = None


def get_redis() -> redis.Redis | None:
    """Get Redis connection, or None if caching is disabled or unconfigured."""
    global redis_client, redis_available

    if not settings.policy_cache_enabled or redis_available is False:
        return None

    if not settings.redis_url or not settings.redis_url.startswith(("redis://", "rediss://", "unix://")):
        redis_available = False
        return None

    if redis_client is None:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        redis_available = True
    return redis_client


def close_redis():
    """Close Redis connection."""
    global redis_client, redis_available
    if redis_client:
        redis_client.close()
        redis_client = None
    redis_available = None


def _entry_key(generation: str, kind: str, parts: tuple) -> str:
    return f"tierquota:policy:{generation}:{kind}:" + ":".join(str(p) for p in parts)


def cached(kind: str, parts: tuple, loader: Callable[[], Any]) -> Any:
    """Return the cached value for (kind, parts), loading it on a miss.

    Values must be JSON serialisable. ``None`` is cached too, because an
    absent access rule or quota row is itself a meaningful answer.
    """
    client = get_redis()
    if client is None:
        return loader()

    try:
        generation = client.get(GENERATION_KEY) or "0"
        key = _entry_key(generation, kind, parts)
        raw = client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Policy cache read failed, using database: {e}")
        return loader()

    if raw is not None:
        return json.loads(raw)["v"]

    value = loader()
    try:
        client.set(key, json.dumps({"v": value}), ex=settings.policy_cache_ttl_seconds)
    except redis.RedisError as e:
        logger.warning(f"Policy cache write failed: {e}")
    return value


def invalidate() -> None:
    """Drop every cached policy entry by advancing the generation."""
    client = get_redis()
    if client is None:
        return
    try:
        generation = client.incr(GENERATION_KEY)
        logger.info(f"Policy cache invalidated, generation={generation}")
    except redis.RedisError as e:
        # Stale entries now live until their TTL expires
        logger.error(f"Policy cache invalidation failed: {e}")
