"""
Redis caching layer for provider lookups.

TTLs:
  - Parcel attributes (MapPLUTO) by BBL: 24 hours
  - Geocoding results by normalized address: 24 hours

Redis is optional: when it is not configured or unreachable every lookup is
a miss and every write is skipped.
"""

from __future__ import annotations

import json
import hashlib
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None

# TTLs in seconds
TTL_PLUTO = 86400       # 24 hours
TTL_GEOCODE = 86400     # 24 hours


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis client. Returns None if Redis is not configured."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    redis_url = settings.redis_url
    if not redis_url:
        return None

    try:
        _redis_client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
        )
        await _redis_client.ping()
        return _redis_client
    except (RedisError, OSError) as e:
        logger.debug("Redis unavailable at %s: %s", redis_url, e)
        _redis_client = None
        return None


def _make_key(prefix: str, identifier: str) -> str:
    return f"nyc_zoning:{prefix}:{identifier}"


def _normalize_address(address: str) -> str:
    """Normalize an address for cache keying."""
    return hashlib.md5(address.lower().strip().encode()).hexdigest()


async def cache_get(prefix: str, identifier: str) -> Optional[dict]:
    """Get a cached value. Returns None on miss or Redis unavailable."""
    r = await get_redis()
    if not r:
        return None
    try:
        val = await r.get(_make_key(prefix, identifier))
        if val:
            return json.loads(val)
    except (RedisError, ValueError) as e:
        logger.debug("Cache read failed for %s:%s: %s", prefix, identifier, e)
    return None


async def cache_set(prefix: str, identifier: str, data: dict, ttl: int) -> bool:
    """Set a cached value. Returns True on success."""
    r = await get_redis()
    if not r:
        return False
    try:
        await r.setex(_make_key(prefix, identifier), ttl, json.dumps(data, default=str))
        return True
    except RedisError as e:
        logger.debug("Cache write failed for %s:%s: %s", prefix, identifier, e)
        return False


# ──────────────────────────────────────────────────────────────────
# CONVENIENCE FUNCTIONS
# ──────────────────────────────────────────────────────────────────

async def get_cached_pluto(bbl: str) -> Optional[dict]:
    return await cache_get("pluto", bbl)


async def set_cached_pluto(bbl: str, data: dict):
    await cache_set("pluto", bbl, data, TTL_PLUTO)


async def get_cached_geocode(address: str) -> Optional[dict]:
    return await cache_get("geocode", _normalize_address(address))


async def set_cached_geocode(address: str, data: dict):
    await cache_set("geocode", _normalize_address(address), data, TTL_GEOCODE)
