"""Recommendation response cache backed by redis.

Values are JSON lists stored with a TTL. Writes are last-write-wins. Any
redis failure is logged and treated as a miss, so callers always fall back
to computing a fresh result.
"""

import json
import logging
from typing import Iterable

import redis

from app.config import get_settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "recommendations"


class RecommendationCache:
    def __init__(self, client, ttl: int = 900):
        self.client = client
        self.ttl = ttl

    @staticmethod
    def build_key(
        user_id: int,
        latitude: float | None,
        longitude: float | None,
        category_ids: Iterable[int] | None,
        count: int,
        variant: str,
    ) -> str:
        if latitude is not None and longitude is not None:
            location = f"{round(latitude, 3)}_{round(longitude, 3)}"
        else:
            location = "no_location"
        categories = sorted(set(category_ids or []))
        category_part = "cat_" + "_".join(str(c) for c in categories) if categories else "no_cat"
        return f"{KEY_PREFIX}:{user_id}:{location}:{category_part}:{count}:p_{variant}"

    def get(self, key: str) -> list[dict] | None:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning("Recommendation cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable cache entry %s", key)
            return None

    def set(self, key: str, items: list[dict]):
        try:
            self.client.setex(key, self.ttl, json.dumps(items))
        except redis.RedisError as e:
            logger.warning("Recommendation cache write failed for %s: %s", key, e)


def build_cache() -> RecommendationCache:
    settings = get_settings()
    client = redis.from_url(settings.redis_url, socket_timeout=5)
    return RecommendationCache(client, ttl=settings.recommendation_cache_ttl)
