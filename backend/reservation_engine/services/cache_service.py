"""
Redis caching for availability ranges.

CACHING STRATEGY
================

What we cache:
  - get_availability_for_range responses (JSON-serialized)
  - Key pattern: "availability:{branch_id}:{start}:{end}:party={party_size}"

Why:
  - Range calendars are the most frequent read and the most expensive one
    (every slot of up to 30 days)
  - Single-slot checks and table assignment are never served from cache;
    a stale answer there could double-book a table

Invalidation strategy:
  - Any lifecycle event for a branch deletes every cached range of that
    branch (prefix SCAN on "availability:{branch_id}:")
  - TTL as safety net, also bounding how long past slots stay bookable in a
    cached calendar

Redis being down or disabled never fails a request: reads miss, writes and
invalidations are skipped.
"""

import json
from datetime import date
from typing import Optional

import redis.asyncio as redis

from reservation_engine.core.config import get_settings
from reservation_engine.core.logging import get_logger
from reservation_engine.core.metrics import record_cache_operation
from reservation_engine.schemas.events import LifecycleEvent

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    settings = get_settings()
    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except (redis.RedisError, OSError) as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _branch_prefix(branch_id: int) -> str:
    return f"availability:{branch_id}:"


def _make_range_key(branch_id: int, start: date, end: date, party_size: int) -> str:
    return f"{_branch_prefix(branch_id)}{start.isoformat()}:{end.isoformat()}:party={party_size}"


async def get_cached_range(branch_id: int, start: date, end: date, party_size: int) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _make_range_key(branch_id, start, end, party_size)
    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", "hit")
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        record_cache_operation("get", "miss")
        logger.debug("cache_miss", key=key)
    except redis.RedisError as e:
        record_cache_operation("get", "error")
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_range(branch_id: int, start: date, end: date, party_size: int, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    key = _make_range_key(branch_id, start, end, party_size)
    try:
        await client.setex(key, ttl, json.dumps(data, default=str))
        record_cache_operation("set", "ok")
        logger.debug("cache_set", key=key, ttl=ttl)
    except redis.RedisError as e:
        record_cache_operation("set", "error")
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_branch_cache(branch_id: int) -> None:
    """Delete every cached range for the branch."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{_branch_prefix(branch_id)}*", count=100):
            await client.delete(key)
            deleted += 1
        record_cache_operation("invalidate", "ok")
        logger.info("cache_invalidated", branch_id=branch_id, keys_deleted=deleted)
    except redis.RedisError as e:
        record_cache_operation("invalidate", "error")
        logger.error("cache_invalidation_error", branch_id=branch_id, error=str(e))


async def invalidate_on_event(event: LifecycleEvent) -> None:
    """Event bus subscriber: any committed lifecycle change may alter availability."""
    await invalidate_branch_cache(event.branch_id)


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}
