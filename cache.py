"""Redis helpers for the public board.

Redis is optional.  When ``REDIS_URL`` is set the public display is cached
for a few seconds under a generation counter that every mutation bumps, and
each mutation is published on a channel so the board can update without
waiting for its next poll.  The database stays the source of truth: cache
failures are logged and otherwise ignored.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import redis

import config
from models import utcnow

logger = logging.getLogger(__name__)

DISPLAY_KEY = "queue:display"
GENERATION_KEY = "queue:display:generation"
UPDATES_CHANNEL = "queue:updates"

_redis_client: Optional[redis.Redis] = None


def get_redis() -> Optional[redis.Redis]:
    """Get Redis client if configured and reachable."""
    global _redis_client
    if not config.REDIS_URL:
        return None

    if _redis_client is None:
        try:
            client = redis.from_url(config.REDIS_URL, decode_responses=True)
            client.ping()
        except redis.RedisError as e:
            logger.warning("Redis connection failed: %s", e)
            return None
        _redis_client = client

    return _redis_client


def display_generation() -> Optional[str]:
    """Current cache generation, or None when Redis is unavailable.

    Every mutation bumps the generation, so rows cached by a reader that
    started before the write land under a key nobody reads any more.
    """
    redis_client = get_redis()
    if redis_client:
        try:
            return redis_client.get(GENERATION_KEY) or "0"
        except redis.RedisError as e:
            logger.warning("Redis get error: %s", e)
    return None


def _display_key(generation: str) -> str:
    return f"{DISPLAY_KEY}:{generation}"


def cache_public_display(rows: List[Dict[str, Any]], generation: str) -> None:
    redis_client = get_redis()
    if redis_client:
        try:
            redis_client.setex(_display_key(generation), config.DISPLAY_CACHE_SECONDS, json.dumps(rows))
        except redis.RedisError as e:
            logger.warning("Redis cache error: %s", e)


def get_cached_public_display(generation: str) -> Optional[List[Dict[str, Any]]]:
    redis_client = get_redis()
    if redis_client:
        try:
            cached = redis_client.get(_display_key(generation))
            if cached:
                return json.loads(cached)
        except redis.RedisError as e:
            logger.warning("Redis get error: %s", e)
    return None


def invalidate_public_display() -> None:
    redis_client = get_redis()
    if redis_client:
        try:
            redis_client.incr(GENERATION_KEY)
        except redis.RedisError as e:
            logger.warning("Redis incr error: %s", e)


def publish_board_update(event: str, patient_id: int, room: int, status: str) -> None:
    """Tell board subscribers that a patient changed."""
    redis_client = get_redis()
    if redis_client:
        try:
            redis_client.publish(UPDATES_CHANNEL, json.dumps({
                "type": "board_update",
                "event": event,
                "patient_id": patient_id,
                "consultation_room": room,
                "status": status,
                "timestamp": utcnow().isoformat(),
            }))
        except redis.RedisError as e:
            logger.warning("Redis publish error: %s", e)
