"""
Redis client wrapper.

Responsibilities:
  • Notification inbox — ZSET notifications:{user_id}
                          score = delivery time (Unix), member = post_id
                          HASH  notifications:{user_id}:data  post_id → JSON
  • Batch status       — see favfeed.fanout.batches.RedisBatchStore

The notifier worker writes inboxes; the API reads them.
"""
import json
import logging
from typing import Optional

import redis.asyncio as aioredis

from favfeed.config import settings

logger = logging.getLogger(__name__)

_redis: Optional[aioredis.Redis] = None


def create_redis() -> aioredis.Redis:
    return aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )


async def init_redis() -> aioredis.Redis:
    global _redis
    _redis = create_redis()
    await _redis.ping()
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialised — call init_redis() at startup")
    return _redis


# ─────────────────────── Notification Inbox ───────────────────────────────

async def get_notifications(user_id: int, limit: int = 50) -> list[dict]:
    """
    Fetch the newest ``limit`` notifications for a user.
    ZREVRANGE returns highest-score (most recent) items first.
    """
    r = get_redis()
    post_ids: list[str] = await r.zrevrange(f"notifications:{user_id}", 0, limit - 1)
    if not post_ids:
        return []
    raw = await r.hmget(f"notifications:{user_id}:data", post_ids)
    return [json.loads(item) for item in raw if item]
