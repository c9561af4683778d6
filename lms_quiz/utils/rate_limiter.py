"""
Rate limiting middleware for API endpoints
"""
import time
from collections import defaultdict
from fastapi import Request, HTTPException
from typing import Dict, Optional, Tuple
import logging

from lms_quiz.config import settings
from lms_quiz.utils.cache import CacheService, cache_service

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window rate limiter (per minute and per hour)

    Counters live in Redis when the cache is connected, so every worker
    shares them; otherwise each process counts in memory.
    """

    WINDOWS: Tuple[Tuple[str, int], ...] = (("minute", 60), ("hour", 3600))

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        cache: Optional[CacheService] = None
    ):
        self.limits = {"minute": requests_per_minute, "hour": requests_per_hour}
        self.cache = cache

        # Storage: {(client_id, window, window_start): count}
        self.local_counters: Dict[Tuple[str, str, int], int] = defaultdict(int)

    def _get_client_id(self, request: Request) -> str:
        """Extract client identifier from request"""
        # Try to get user_id from request state (if authenticated)
        if hasattr(request.state, "user_id"):
            return str(request.state.user_id)

        header_user = request.headers.get("X-User-Id")
        if header_user:
            return header_user

        # Fallback to IP address
        return request.client.host if request.client else "unknown"

    def _increment(self, client_id: str, window: str, seconds: int, now: float) -> int:
        """Count this request in the current window and return the new total"""
        window_start = int(now // seconds) * seconds

        redis_client = self.cache.redis_client if self.cache else None
        if redis_client is not None:
            key = f"ratelimit:{window}:{client_id}:{window_start}"
            try:
                count = redis_client.incr(key)
                if count == 1:
                    redis_client.expire(key, seconds)
                return count
            except Exception as e:
                logger.warning(f"Redis rate limit counter failed, counting locally: {str(e)}")

        self._drop_expired(window, window_start)
        self.local_counters[(client_id, window, window_start)] += 1
        return self.local_counters[(client_id, window, window_start)]

    def _drop_expired(self, window: str, window_start: int) -> None:
        for key in [k for k in self.local_counters if k[1] == window and k[2] < window_start]:
            del self.local_counters[key]

    async def check_rate_limit(self, request: Request) -> None:
        """
        Check if request exceeds rate limits

        Raises:
            HTTPException: 429 if rate limit exceeded
        """
        client_id = self._get_client_id(request)
        now = time.time()

        for window, seconds in self.WINDOWS:
            count = self._increment(client_id, window, seconds, now)
            limit = self.limits[window]
            if count > limit:
                logger.warning(f"Rate limit exceeded ({window}): {client_id}")
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": "rate_limit_exceeded",
                        "message": f"Too many requests. Limit: {limit} requests per {window}",
                        "retry_after": seconds - int(now % seconds)
                    }
                )

        logger.debug(f"Rate limit check passed: {client_id}")


# Global instance
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR,
    cache=cache_service
)
