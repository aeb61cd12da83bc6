"""
Redis Connection and Rate Limiting

Redis only backs the request limiter of the public booking endpoints. It is
optional: while it is unreachable the limiter lets every request through and
readiness reports it as failed, but nothing else degrades.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "schedulizer:v1:"

_client: Optional[Redis] = None


async def get_redis() -> Optional[Redis]:
    """
    Shared client, connected on first use.

    Returns None while Redis is unreachable; the next call tries again.
    """
    global _client
    if _client is not None:
        return _client

    client = redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2.0,
        socket_timeout=2.0,
        retry=Retry(ExponentialBackoff(cap=1.0), retries=2),
    )
    try:
        await client.ping()
    except RedisError as e:
        logger.warning(f"Redis unreachable: {e}")
        await client.aclose()
        return None

    logger.info("Redis connection established")
    _client = client
    return _client


async def close_redis() -> None:
    global _client
    if _client is None:
        return
    try:
        await _client.aclose()
    except RedisError as e:
        logger.error(f"Error closing Redis connection: {e}")
    finally:
        _client = None


class RateLimiterStore:
    """
    Fixed-window request counter, one key per client per window.

    Key: schedulizer:v1:ratelimit:{identifier}

    Fails open: without Redis, or on any Redis error, the request is allowed.
    """

    KEY_TEMPLATE = KEY_PREFIX + "ratelimit:{}"

    def __init__(
        self,
        redis_client: Optional[Redis],
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        self.redis = redis_client
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window

    def _allow_all(self) -> tuple[bool, int, int]:
        return (True, self.max_requests, self.window_seconds)

    async def hit(self, identifier: str) -> tuple[bool, int, int]:
        """
        Count one request against the identifier's current window.

        Args:
            identifier: Bucket name (e.g. "ip:203.0.113.7")

        Returns:
            Tuple of (allowed, remaining, reset_seconds)
        """
        if self.redis is None:
            return self._allow_all()

        key = self.KEY_TEMPLATE.format(identifier)
        try:
            # EXPIRE NX only starts the window on the first request
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.window_seconds, nx=True)
                pipe.ttl(key)
                count, _, ttl = await pipe.execute()
        except RedisError as e:
            logger.error(f"Rate limit check failed | Client: {identifier} | Error: {e}")
            return self._allow_all()

        reset_seconds = ttl if ttl > 0 else self.window_seconds
        return (count <= self.max_requests, max(0, self.max_requests - count), reset_seconds)


async def get_rate_limiter_store() -> RateLimiterStore:
    """FastAPI dependency. The store is usable even when Redis is down."""
    return RateLimiterStore(await get_redis())


async def check_redis_health() -> bool:
    client = await get_redis()
    if client is None:
        return False
    try:
        await client.ping()
        return True
    except RedisError as e:
        logger.warning(f"Redis health check failed: {e}")
        return False
