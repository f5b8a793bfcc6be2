"""
Unit tests for the quota stores.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from service_access.app.ratelimit.quota_store import InMemoryQuotaStore, RedisQuotaStore, QuotaStore
from service_access.app.ratelimit.limiter import RateLimiter
from service_access.app.ratelimit.policies import RateLimitPolicyName
from shared.errors import StoreUnavailable


class TestInMemoryQuotaStore:
    """Test cases for InMemoryQuotaStore."""

    @pytest.fixture
    def store(self, clock):
        return InMemoryQuotaStore(clock=clock)

    def test_satisfies_protocol(self, store):
        assert isinstance(store, QuotaStore)

    @pytest.mark.asyncio
    async def test_increment_counts_up_from_one(self, store):
        assert await store.increment("k") == 1
        assert await store.increment("k") == 2
        assert await store.increment("other") == 1

    @pytest.mark.asyncio
    async def test_ttl_reports_missing_and_unexpiring_keys(self, store):
        assert await store.ttl("k") == -2

        await store.increment("k")
        assert await store.ttl("k") == -1

        await store.expire("k", 60)
        assert await store.ttl("k") == 60

    @pytest.mark.asyncio
    async def test_counter_is_deleted_when_window_elapses(self, store, clock):
        await store.increment("k")
        await store.expire("k", 60)
        await store.increment("k")

        clock.advance(59)
        assert await store.get("k") == 2

        clock.advance(1)
        assert await store.get("k") == 0
        assert await store.increment("k") == 1
        assert await store.ttl("k") == -1

    @pytest.mark.asyncio
    async def test_expire_on_missing_key_is_noop(self, store):
        await store.expire("missing", 60)
        assert await store.ttl("missing") == -2

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.increment("k")
        await store.delete("k")
        assert await store.get("k") == 0
        assert store.keys() == []


class TestRedisQuotaStore:
    """Test cases for RedisQuotaStore."""

    @pytest.fixture
    def mock_redis(self):
        client = MagicMock()
        client.incr = AsyncMock(return_value=1)
        client.expire = AsyncMock(return_value=True)
        client.ttl = AsyncMock(return_value=900)
        client.get = AsyncMock(return_value="3")
        client.delete = AsyncMock(return_value=1)
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def store(self, mock_redis):
        return RedisQuotaStore("redis://localhost:6379/0", failure_threshold=2, client=mock_redis)

    @pytest.mark.asyncio
    async def test_commands_are_forwarded(self, store, mock_redis):
        assert await store.increment("rate_limit:API_REQUESTS:1.2.3.4") == 1
        await store.expire("rate_limit:API_REQUESTS:1.2.3.4", 900)
        assert await store.ttl("rate_limit:API_REQUESTS:1.2.3.4") == 900
        assert await store.get("rate_limit:API_REQUESTS:1.2.3.4") == 3

        mock_redis.incr.assert_awaited_once_with("rate_limit:API_REQUESTS:1.2.3.4")
        mock_redis.expire.assert_awaited_once_with("rate_limit:API_REQUESTS:1.2.3.4", 900)

    @pytest.mark.asyncio
    async def test_get_missing_key_is_zero(self, store, mock_redis):
        mock_redis.get.return_value = None
        assert await store.get("missing") == 0

    @pytest.mark.asyncio
    async def test_redis_error_becomes_store_unavailable(self, store, mock_redis):
        mock_redis.incr.side_effect = RedisConnectionError("Connection refused")

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.increment("k")

        assert exc_info.value.code == "STORE_UNAVAILABLE"
        assert exc_info.value.details["operation"] == "increment"

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self, store, mock_redis):
        mock_redis.incr.side_effect = RedisConnectionError("Connection refused")

        for _ in range(2):
            with pytest.raises(StoreUnavailable):
                await store.increment("k")

        assert store.circuit_breaker.is_open()

        with pytest.raises(StoreUnavailable):
            await store.increment("k")

        # The open breaker short-circuits without touching Redis.
        assert mock_redis.incr.await_count == 2

    @pytest.mark.asyncio
    async def test_ping_reports_outage_as_false(self, store, mock_redis):
        mock_redis.ping.side_effect = RedisConnectionError("down")
        assert await store.ping() is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self, store, mock_redis):
        await store.close()
        mock_redis.aclose.assert_awaited_once()


class HangingRedis:
    """Redis client whose commands never answer."""

    def __init__(self):
        self.calls = 0

    async def incr(self, key):
        self.calls += 1
        await asyncio.sleep(5)


class TestRedisQuotaStoreDeadline:
    """A hung Redis must count against the circuit breaker."""

    @pytest.mark.asyncio
    async def test_hung_commands_time_out(self):
        store = RedisQuotaStore("redis://localhost:6379/0", command_timeout=0.01, client=HangingRedis())

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.increment("k")
        assert exc_info.value.details["operation"] == "increment"

    @pytest.mark.asyncio
    async def test_hung_redis_opens_breaker_behind_limiter(self, clock):
        client = HangingRedis()
        store = RedisQuotaStore(
            "redis://localhost:6379/0", command_timeout=0.01, failure_threshold=2, client=client
        )
        rate_limiter = RateLimiter(store, store_timeout=0.5, clock=clock)

        for _ in range(2):
            result = await rate_limiter.check_rate_limit("10.3.0.1", RateLimitPolicyName.AUTH_ATTEMPTS)
            assert result.allowed is True
            assert result.degraded is True

        assert store.circuit_breaker.is_open()

        for _ in range(5):
            result = await rate_limiter.check_rate_limit("10.3.0.1", RateLimitPolicyName.AUTH_ATTEMPTS)
            assert result.degraded is True

        # The open breaker answers without waiting on Redis.
        assert client.calls == 2
