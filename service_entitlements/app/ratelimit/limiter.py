"""
Per-operation rate limiter for Entitlements Service.
"""

from typing import Any, Dict, Optional

import redis.asyncio as redis
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.errors import RateLimitError


class OperationRateLimiter:
    """Distributed fixed-window rate limiter using Redis.

    Scoped by caller and operation name: every engine operation is limited
    independently. When Redis is unreachable requests are let through.
    """

    def __init__(self, redis_url: str, limit: int = 10, window_seconds: int = 60,
                 metrics: Optional[MetricsCollector] = None):
        self.redis_url = redis_url
        self.limit = limit
        self.window_seconds = window_seconds
        self.metrics = metrics
        self.logger = get_logger("entitlements.rate_limiter")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                socket_connect_timeout=2,
                socket_timeout=2
            )
        return self._redis

    def _make_key(self, caller_id: str, operation: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{caller_id}:{operation}"

    async def check_rate_limit(self, caller_id: str, operation: str) -> Dict[str, Any]:
        """Count one call of ``operation`` by ``caller_id`` against the window."""
        key = self._make_key(caller_id, operation)

        try:
            redis_client = await self._get_redis()

            async with redis_client.pipeline(transaction=True) as pipeline:
                pipeline.incr(key)
                pipeline.ttl(key)
                current_count, ttl = await pipeline.execute()

            if ttl is None or ttl < 0:
                await redis_client.expire(key, self.window_seconds)
                ttl = self.window_seconds

        except (redis.RedisError, OSError) as e:
            self.logger.error("Rate limit check error", error=str(e), operation=operation)
            return {
                "allowed": True,
                "current_count": 0,
                "limit": self.limit,
                "remaining": self.limit,
                "reset_in_seconds": self.window_seconds,
                "error": "Redis unavailable"
            }

        current_count = int(current_count)
        if current_count > self.limit:
            self.logger.warning(
                "Rate limit exceeded",
                caller_id=caller_id,
                operation=operation,
                current_count=current_count,
                limit=self.limit
            )
            return {
                "allowed": False,
                "current_count": current_count,
                "limit": self.limit,
                "remaining": 0,
                "reset_in_seconds": int(ttl),
                "retry_after": int(ttl)
            }

        return {
            "allowed": True,
            "current_count": current_count,
            "limit": self.limit,
            "remaining": max(0, self.limit - current_count),
            "reset_in_seconds": int(ttl)
        }

    async def enforce(self, caller_id: str, operation: str) -> Dict[str, Any]:
        """Raise RateLimitError when the caller is over the limit."""
        result = await self.check_rate_limit(caller_id, operation)
        if not result["allowed"]:
            if self.metrics is not None:
                self.metrics.increment_counter("rate_limit_hits_total", operation=operation)
            raise RateLimitError(
                f"Rate limit exceeded for {operation}",
                {
                    "operation": operation,
                    "limit": result["limit"],
                    "retry_after": result["retry_after"]
                }
            )
        return result

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            redis_client = await self._get_redis()
            return bool(await redis_client.ping())
        except (redis.RedisError, OSError):
            return False
