"""
Redis cache utility for quiz definition lookups
"""
import redis
import json
import logging
from typing import Optional, Any
from lms_quiz.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-based cache for raw quiz definitions keyed by quiz id"""

    def __init__(self, redis_url: str = settings.REDIS_URL, enabled: bool = settings.CACHE_ENABLED):
        self.redis_client = None
        if not enabled:
            logger.info("Caching disabled by configuration")
            return

        try:
            self.redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(f"Redis connection failed: {str(e)}. Caching disabled.")
            self.redis_client = None

    @property
    def available(self) -> bool:
        return self.redis_client is not None

    def quiz_definition_key(self, quiz_id: str) -> str:
        """Cache key for one quiz definition row"""
        return f"quiz:definition:{quiz_id}"

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache

        Args:
            key: Cache key

        Returns:
            Cached value or None
        """
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                logger.debug(f"Cache hit: {key}")
                return json.loads(value)
            logger.debug(f"Cache miss: {key}")
            return None
        except Exception as e:
            logger.error(f"Cache get error: {str(e)}")
            return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: int = None
    ) -> bool:
        """
        Set value in cache

        Args:
            key: Cache key
            value: Value to cache (UUIDs and datetimes are stored as strings)
            ttl: Time to live in seconds (default from settings)

        Returns:
            Success status
        """
        if not self.redis_client:
            return False

        try:
            ttl = ttl or settings.QUIZ_DEFINITION_CACHE_TTL
            serialized = json.dumps(value, default=str)
            self.redis_client.setex(key, ttl, serialized)
            logger.debug(f"Cache set: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error: {str(e)}")
            return False


# Global instance
cache_service = CacheService()
