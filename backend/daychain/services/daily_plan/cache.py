"""Redis-backed cache for plan-builder inputs.

Keys are typed (user, date, query) and every entry expires after a TTL. The
cache is handed to the builder explicitly; with no client configured, or when
Redis misbehaves, every lookup is a miss and nothing is raised.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable, Optional, TypeVar
from uuid import UUID

import redis
from redis.exceptions import RedisError

from daychain.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "daychain:plan-input"
INPUT_QUERIES = ("commitments", "tasks", "routines")

_redis_client: Optional[redis.Redis] = None


@dataclass(frozen=True)
class CacheKey:
    user_id: UUID
    plan_date: date
    query: str

    def render(self) -> str:
        return f"{KEY_PREFIX}:{self.user_id}:{self.plan_date.isoformat()}:{self.query}"


class PlanInputCache:
    def __init__(self, client: Optional[Any], ttl_seconds: int) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.ttl_seconds > 0

    def get(self, key: CacheKey) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(key.render())
        except RedisError as exc:
            logger.warning("Plan input cache read failed for %s: %s", key.render(), exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry %s", key.render())
            return None

    def set(self, key: CacheKey, value: Any) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.setex(key.render(), self.ttl_seconds, json.dumps(value, default=str))
        except RedisError as exc:
            logger.warning("Plan input cache write failed for %s: %s", key.render(), exc)
            return False
        return True

    def invalidate(self, user_id: UUID, plan_date: date, queries: Iterable[str] = INPUT_QUERIES) -> int:
        if not self.enabled:
            return 0
        keys = [CacheKey(user_id, plan_date, query).render() for query in queries]
        try:
            return int(self.client.delete(*keys) or 0)
        except RedisError as exc:
            logger.warning("Plan input cache invalidation failed for %s/%s: %s", user_id, plan_date, exc)
            return 0

    def get_or_load(
        self,
        key: CacheKey,
        loader: Callable[[], T],
        *,
        encode: Callable[[T], Any],
        decode: Callable[[Any], T],
    ) -> T:
        cached = self.get(key)
        if cached is not None:
            try:
                return decode(cached)
            except (KeyError, TypeError, ValueError):
                logger.warning("Stale cache shape for %s; reloading", key.render())
        value = loader()
        self.set(key, encode(value))
        return value


def get_redis_client() -> Optional[redis.Redis]:
    """Shared Redis client, or None when caching is not configured/reachable."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client
    if not settings.redis_url:
        return None
    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
    except RedisError as exc:
        logger.warning("Redis unavailable (%s); plan input caching disabled.", exc)
        return None
    logger.info("Redis connection established for plan input cache")
    _redis_client = client
    return _redis_client


def get_plan_input_cache() -> PlanInputCache:
    return PlanInputCache(get_redis_client(), settings.plan_cache_ttl_seconds)
