"""Tests for the Redis rate limiter store."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from app.infra.redis import RateLimiterStore

KEY = "schedulizer:v1:ratelimit:ip:203.0.113.7"


class TestRateLimiterStore:
    """Test fixed-window counting."""

    @pytest.fixture
    def pipe(self):
        mock = MagicMock()
        mock.__aenter__ = AsyncMock(return_value=mock)
        mock.__aexit__ = AsyncMock(return_value=False)
        mock.execute = AsyncMock(return_value=[1, True, 60])
        return mock

    @pytest.fixture
    def mock_redis(self, pipe):
        mock = MagicMock()
        mock.pipeline.return_value = pipe
        return mock

    @pytest.mark.asyncio
    async def test_first_hit_opens_window(self, mock_redis, pipe):
        store = RateLimiterStore(mock_redis, max_requests=10, window_seconds=60)

        assert await store.hit("ip:203.0.113.7") == (True, 9, 60)
        mock_redis.pipeline.assert_called_once_with(transaction=True)
        pipe.incr.assert_called_once_with(KEY)
        pipe.expire.assert_called_once_with(KEY, 60, nx=True)
        pipe.ttl.assert_called_once_with(KEY)

    @pytest.mark.asyncio
    async def test_later_hit_reports_remaining_ttl(self, mock_redis, pipe):
        pipe.execute.return_value = [5, False, 42]
        store = RateLimiterStore(mock_redis, max_requests=10, window_seconds=60)

        assert await store.hit("ip:1") == (True, 5, 42)

    @pytest.mark.asyncio
    async def test_last_allowed_request(self, mock_redis, pipe):
        pipe.execute.return_value = [10, False, 3]
        store = RateLimiterStore(mock_redis, max_requests=10, window_seconds=60)

        assert await store.hit("ip:1") == (True, 0, 3)

    @pytest.mark.asyncio
    async def test_over_limit(self, mock_redis, pipe):
        pipe.execute.return_value = [11, False, 30]
        store = RateLimiterStore(mock_redis, max_requests=10, window_seconds=60)

        assert await store.hit("ip:1") == (False, 0, 30)

    @pytest.mark.asyncio
    async def test_missing_ttl_uses_window(self, mock_redis, pipe):
        pipe.execute.return_value = [2, False, -1]
        store = RateLimiterStore(mock_redis, max_requests=10, window_seconds=60)

        assert await store.hit("ip:1") == (True, 8, 60)

    @pytest.mark.asyncio
    async def test_redis_unavailable_fails_open(self):
        store = RateLimiterStore(None, max_requests=10, window_seconds=60)

        assert await store.hit("ip:1") == (True, 10, 60)

    @pytest.mark.asyncio
    async def test_redis_error_fails_open(self, mock_redis, pipe):
        pipe.execute.side_effect = RedisConnectionError("connection lost")
        store = RateLimiterStore(mock_redis, max_requests=10, window_seconds=60)

        assert await store.hit("ip:1") == (True, 10, 60)
