"""
Redis caching utilities for availability and slot queries
Every mutating operation names the tags it invalidates, reads are tagged when stored
"""
import json
import logging
from typing import Any, Callable, Iterable, Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

TAG_PREFIX = "tag:"


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create Redis client
    Returns None when REDIS_URL is not configured
    """
    global redis_client

    if redis_client is None and REDIS_URL:
        logger.info("🔄 Initializing Redis connection for cache...")
        redis_client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        redis_client.ping()
        logger.info("Redis connected successfully via URL")
    return redis_client


class Cache:
    """Redis cache wrapper with automatic serialization and tag invalidation"""

    def __init__(self, client=None):
        self.redis_client = client

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
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
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600, tags: Iterable[str] = ()) -> bool:
        """Set value in cache with TTL (default 1 hour), recording it under each tag"""
        client = self._get_client()
        if not client:
            return False

        try:
            serialized = json.dumps(value)
            client.setex(key, ttl, serialized)
            for tag in tags:
                tag_key = f"{TAG_PREFIX}{tag}"
                client.sadd(tag_key, key)
                # Tag sets outlive their members by one TTL at most
                client.expire(tag_key, ttl)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
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
        except Exception as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Delete every key recorded under the given tags"""
        client = self._get_client()
        if not client:
            return 0

        tags = list(tags)
        deleted = 0
        for tag in tags:
            tag_key = f"{TAG_PREFIX}{tag}"
            try:
                keys = client.smembers(tag_key)
                if keys:
                    deleted += client.delete(*keys)
                client.delete(tag_key)
            except Exception as e:
                logger.error(f"❌ Cache invalidate error for tag {tag}: {e}")
        if deleted:
            logger.debug(f"✅ Cache INVALIDATE: {list(tags)} ({deleted} keys)")
        return deleted

    def get_or_set(
        self, key: str, loader: Callable[[], Any], ttl: int = 3600, tags: Iterable[str] = ()
    ) -> Any:
        """Return the cached value, loading and storing it on a miss"""
        cached_value = self.get(key)
        if cached_value is not None:
            return cached_value

        value = loader()
        if value is not None:
            self.set(key, value, ttl, tags)
        return value


# Global cache instance
cache = Cache()


# Cache keys and tags for scheduling reads

def availability_tag(host_id: int) -> str:
    return f"availability:{host_id}"


def slots_tag(host_id: int, day: Optional[str] = None) -> str:
    """Tag for all slot lists of a host, or for one local date (YYYY-MM-DD)"""
    if day is None:
        return f"slots:{host_id}"
    return f"slots:{host_id}:{day}"


def bookings_tag(host_id: int) -> str:
    return f"bookings:{host_id}"


def build_availability_key(host_id: int) -> str:
    return f"availability:{host_id}:week"


def build_slots_key(host_id: int, day: str, duration: int) -> str:
    return f"slots:{host_id}:{day}:{duration}"


# Cache statistics (for monitoring)

def get_cache_stats() -> dict:
    """Get cache statistics"""
    client = cache._get_client()
    if not client:
        return {"available": False}

    try:
        info = client.info()
        return {
            "available": True,
            "used_memory": info.get("used_memory_human"),
            "connected_clients": info.get("connected_clients"),
            "keyspace_hits": info.get("keyspace_hits", 0),
            "keyspace_misses": info.get("keyspace_misses", 0),
            "hit_rate": (
                info.get("keyspace_hits", 0)
                / max(info.get("keyspace_hits", 0) + info.get("keyspace_misses", 0), 1)
            ) * 100,
        }
    except Exception as e:
        logger.error(f"❌ Failed to get cache stats: {e}")
        return {"available": False, "error": str(e)}
