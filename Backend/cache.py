"""
Redis response cache with graceful fallback when Redis is unavailable.
"""

import json
import logging

import redis

import config

logger = logging.getLogger(__name__)

_redis_client = None


def get_redis():
    """Lazy-initialize and return the Redis client, or None if unavailable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    if not config.REDIS_URL:
        return None
    try:
        client = redis.Redis.from_url(config.REDIS_URL, decode_responses=True, socket_timeout=1)
        client.ping()
    except redis.RedisError:
        logger.warning("⚠ Redis unavailable — running without cache")
        return None
    _redis_client = client
    logger.info("✓ Redis connected — caching is enabled")
    return _redis_client


def cache_get(key: str):
    """Read a JSON value from Redis; returns None on miss or if Redis is down."""
    r = get_redis()
    if r is None:
        return None
    try:
        data = r.get(key)
    except redis.RedisError as exc:
        logger.warning("cache_get(%s) failed: %s", key, exc)
        return None
    return json.loads(data) if data else None


def cache_set(key: str, value, ttl: int = config.LEADERBOARD_CACHE_TTL):
    """Write a JSON value to Redis with a TTL (seconds)."""
    r = get_redis()
    if r is None:
        return
    try:
        r.setex(key, ttl, json.dumps(value, default=str))
    except redis.RedisError as exc:
        logger.warning("cache_set(%s) failed: %s", key, exc)


def cache_invalidate_prefix(prefix: str):
    """Delete every key starting with prefix."""
    r = get_redis()
    if r is None:
        return
    try:
        keys = list(r.scan_iter(match=f"{prefix}*"))
        if keys:
            r.delete(*keys)
    except redis.RedisError as exc:
        logger.warning("cache invalidation for %s* failed: %s", prefix, exc)
