"""
Hybrid in-memory + Redis rate limiting utilities
Fixed-window counters keyed by a hash of the client IP
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import Request

from .security_utils import generate_rate_limit_key

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# Configuration
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds


def redis_configured() -> bool:
    return bool(os.getenv("REDIS_URL") or os.getenv("REDIS_HOST"))


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both a REDIS_URL and individual host/port settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection...")

        redis_url = os.getenv("REDIS_URL")
        options = {
            "decode_responses": True,
            "socket_connect_timeout": 15,
            "socket_timeout": 30,
            "retry_on_timeout": True,
            "health_check_interval": 30,
            "max_connections": 20,
        }

        try:
            if redis_url:
                client = redis.from_url(redis_url, **options)
            else:
                client = redis.Redis(
                    host=os.getenv("REDIS_HOST", "localhost"),
                    port=int(os.getenv("REDIS_PORT", "6379")),
                    password=os.getenv("REDIS_PASSWORD", None),
                    db=int(os.getenv("REDIS_DB", "0")),
                    ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                    **options,
                )
            # Test connection
            client.ping()
            redis_client = client
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            raise

    return redis_client


def get_client_ip(request: Request) -> str:
    """
    IP of the direct connection.

    Proxy headers such as X-Forwarded-For are client-controlled and are
    deliberately ignored so a caller cannot rotate its rate-limit identity.
    """
    return request.client.host if request.client else "0.0.0.0"


class RateLimiter:
    """Fixed-window attempt counter.

    Redis is the shared source of truth when available; otherwise counts are
    held in process memory with the same window semantics.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        key_prefix: str = "rate_limit",
        redis_client: Optional[redis.Redis] = None,
        use_redis: Optional[bool] = None,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self.redis_client = redis_client
        if use_redis is None:
            use_redis = redis_configured()
        self.use_redis = use_redis or redis_client is not None

        # Format: {key: {'count': int, 'reset_time': float}}
        self.memory_cache: dict[str, dict] = {}
        self.cache_lock = Lock()
        self.last_cleanup_time = 0.0

    def _get_client(self) -> Optional[redis.Redis]:
        if not self.use_redis:
            return None
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis unavailable, rate limiting with in-memory counters: {e}")
                self.use_redis = False
                return None
        return self.redis_client

    def _cleanup_expired(self, now: float) -> None:
        """Remove expired entries from memory cache"""
        if now - self.last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
            return
        expired_keys = [k for k, v in self.memory_cache.items() if now >= v["reset_time"]]
        for k in expired_keys:
            del self.memory_cache[k]
        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")
        self.last_cleanup_time = now

    def _hit_memory(self, key: str) -> tuple[bool, int, int]:
        now = time.time()
        with self.cache_lock:
            self._cleanup_expired(now)
            entry = self.memory_cache.get(key)
            if entry is None or now >= entry["reset_time"]:
                entry = {"count": 0, "reset_time": now + self.window_seconds}
                self.memory_cache[key] = entry

            if entry["count"] >= self.limit:
                return False, entry["count"], int(entry["reset_time"] - now)

            entry["count"] += 1
            return True, entry["count"], int(entry["reset_time"] - now)

    def _hit_redis(self, client: redis.Redis, key: str) -> tuple[bool, int, int]:
        # INCR and the first-hit EXPIRE run in one MULTI block
        pipe = client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, self.window_seconds, nx=True)
        pipe.ttl(key)
        count, _, ttl = pipe.execute()
        count = int(count)
        if ttl < 0:
            ttl = self.window_seconds

        if count > self.limit:
            # Over the cap: take the attempt back out so it is not counted
            client.decr(key)
            return False, self.limit, ttl
        return True, count, ttl

    def hit(self, identifier: str) -> tuple[bool, int, int]:
        """Check and increment the counter for ``identifier``.

        Attempts over the cap are rejected without being counted.

        Returns:
            Tuple of (is_allowed, current_count, retry_after_seconds)
        """
        key = generate_rate_limit_key(identifier, self.key_prefix)
        client = self._get_client()
        if client is not None:
            try:
                return self._hit_redis(client, key)
            except redis.RedisError as e:
                logger.warning(f"⚠️ Redis rate limit check failed, falling back to memory: {e}")

        return self._hit_memory(key)

    def reset(self, identifier: str) -> None:
        key = generate_rate_limit_key(identifier, self.key_prefix)
        with self.cache_lock:
            self.memory_cache.pop(key, None)
        client = self._get_client()
        if client is not None:
            try:
                client.delete(key)
            except redis.RedisError as e:
                logger.warning(f"⚠️ Failed to reset rate limit in Redis: {e}")
