import json
from typing import Any, Optional

import redis
import structlog

from agt20.config import settings

logger = structlog.get_logger()

TOKEN_LIST_PREFIX = "agt20:tokens"
TOKEN_DETAIL_PREFIX = "agt20:token"


class CacheService:
    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl: Optional[int] = None):
        self.redis_client = redis_client or redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        self.ttl = ttl or settings.CACHE_TTL

    def get(self, key: str) -> Optional[Any]:
        """Get cached value"""
        try:
            cached = self.redis_client.get(key)
            if cached:
                return json.loads(cached)
        except (redis.RedisError, ValueError) as e:
            logger.error("Cache get failed", key=key, error=str(e))
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set cached value with TTL"""
        try:
            return bool(self.redis_client.setex(key, ttl or self.ttl, json.dumps(value, default=str)))
        except (redis.RedisError, TypeError) as e:
            logger.error("Cache set failed", key=key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        """Delete cached value"""
        try:
            return bool(self.redis_client.delete(key))
        except redis.RedisError as e:
            logger.error("Cache delete failed", key=key, error=str(e))
            return False

    def invalidate_tokens(self) -> None:
        """Drop every cached token list and token detail entry"""
        try:
            for pattern in (f"{TOKEN_LIST_PREFIX}:*", f"{TOKEN_DETAIL_PREFIX}:*"):
                keys = list(self.redis_client.scan_iter(match=pattern))
                if keys:
                    self.redis_client.delete(*keys)
        except redis.RedisError as e:
            logger.error("Cache invalidation failed", error=str(e))

    def generate_key(self, prefix: str, *args) -> str:
        """Generate cache key"""
        return f"{prefix}:{'_'.join(str(arg) for arg in args)}"
