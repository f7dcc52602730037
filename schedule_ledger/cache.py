"""
Redis caching utilities
Holds short-lived per-owner markers (reconcile cooldowns). Every operation
fails open: without Redis the callers simply run uncached.
"""
import json
import logging
import os
from typing import Any, Optional

import redis

from .config import REDIS_HOST, REDIS_URL

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client.
    Returns None when neither REDIS_URL nor REDIS_HOST is configured.
    """
    global redis_client

    if redis_client is None:
        if REDIS_URL:
            # Mask password in URL for logging
            masked_url = REDIS_URL.split("@")[-1] if "@" in REDIS_URL else "****"
            logger.info(f"📡 Using Redis URL connection: {masked_url}")
            client = redis.from_url(
                REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        elif REDIS_HOST:
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(f"📡 Using Redis at {REDIS_HOST}:{redis_port} (SSL: {redis_ssl})")
            client = redis.Redis(
                host=REDIS_HOST,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD") or None,
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            return None

        # Only a client that answered the ping is reused
        client.ping()
        redis_client = client
        logger.info("✅ Redis connected successfully")

    return redis_client


class Cache:
    """Redis cache wrapper with automatic serialization"""

    def __init__(self):
        self.redis_client = None
        self._disabled = False

    def _get_client(self):
        """Lazy load Redis client"""
        if self._disabled:
            return None
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except redis.RedisError as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
            if self.redis_client is None:
                self._disabled = True
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except (redis.RedisError, TypeError) as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except redis.RedisError as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False


# Global cache instance
cache = Cache()
