"""
Redis caching utilities with an in-process fallback
Used to bound external API call volume (Google Calendar freebusy)
"""
import json
import logging
import time
from threading import Lock
from typing import Any, Optional

from .rate_limiter import get_redis_client, redis_configured

logger = logging.getLogger(__name__)


class Cache:
    """Redis cache wrapper with automatic serialization.

    When Redis is not configured or unreachable, entries live in a per-process
    dict with the same TTL semantics.
    """

    def __init__(self, redis_client=None, use_redis: Optional[bool] = None):
        self.redis_client = redis_client
        if use_redis is None:
            use_redis = redis_configured()
        self.use_redis = use_redis or redis_client is not None
        # Format: {key: (expires_at, serialized_value)}
        self.memory_cache: dict[str, tuple[float, str]] = {}
        self.lock = Lock()

    def _get_client(self):
        """Lazy load Redis client"""
        if not self.use_redis:
            return None
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable, using in-process cache: {e}")
                self.use_redis = False
                return None
        return self.redis_client

    def _sweep_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self.memory_cache.items() if now >= expires_at]
        for k in expired:
            del self.memory_cache[k]

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if client is None:
            with self.lock:
                entry = self.memory_cache.get(key)
                if entry is None:
                    return None
                expires_at, value = entry
                if time.time() >= expires_at:
                    del self.memory_cache[key]
                    logger.debug(f"❌ Cache MISS (expired): {key}")
                    return None
            logger.debug(f"✅ Cache HIT: {key}")
            return json.loads(value)

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        serialized = json.dumps(value)
        client = self._get_client()
        if client is None:
            now = time.time()
            with self.lock:
                self._sweep_expired(now)
                self.memory_cache[key] = (now + ttl, serialized)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True

        try:
            client.setex(key, ttl, serialized)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        client = self._get_client()
        if client is None:
            with self.lock:
                self.memory_cache.pop(key, None)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True

        try:
            client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False


# Global cache instance
cache = Cache()


# Specific cache utilities for calendar busy data

def build_busy_cache_key(date_str: str) -> str:
    return f"gcal_busy:{date_str}"
