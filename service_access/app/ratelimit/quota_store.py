"""
Quota stores: shared counters with atomic increment and expiry.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Protocol, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import StoreUnavailable
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException


@runtime_checkable
class QuotaStore(Protocol):
    """Counter store shared by every request-handling process.

    ``increment`` must be atomic without caller-side locking. Implementations
    raise StoreUnavailable when the backing store cannot be reached.
    """

    async def increment(self, key: str) -> int:
        ...

    async def expire(self, key: str, seconds: int) -> None:
        ...

    async def ttl(self, key: str) -> int:
        """Seconds until expiry, -1 for no expiry, -2 for a missing key."""
        ...

    async def get(self, key: str) -> int:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class RedisQuotaStore:
    """Quota store backed by Redis INCR/EXPIRE."""

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = 2.0,
        command_timeout: float = 0.4,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.command_timeout = command_timeout
        self.logger = get_logger("access.quota_store.redis")
        self._redis: Optional[redis.Redis] = client
        self.circuit_breaker = CircuitBreaker(
            name="quota_store",
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            tracked_exceptions=(RedisError, OSError, asyncio.TimeoutError),
        )

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
            )
        return self._redis

    async def _execute(self, operation: str, command: str, *args):
        client = self._get_redis()

        # The deadline runs inside the breaker so a hung Redis counts as a failure.
        async def _send():
            return await asyncio.wait_for(getattr(client, command)(*args), timeout=self.command_timeout)

        try:
            return await self.circuit_breaker.call(_send)
        except CircuitBreakerOpenException as e:
            raise StoreUnavailable(str(e), details={"operation": operation})
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            self.logger.error("Quota store command failed", operation=operation, error=str(e))
            raise StoreUnavailable(details={"operation": operation, "error": str(e)})

    async def increment(self, key: str) -> int:
        return int(await self._execute("increment", "incr", key))

    async def expire(self, key: str, seconds: int) -> None:
        await self._execute("expire", "expire", key, seconds)

    async def ttl(self, key: str) -> int:
        return int(await self._execute("ttl", "ttl", key))

    async def get(self, key: str) -> int:
        value = await self._execute("get", "get", key)
        return int(value) if value is not None else 0

    async def delete(self, key: str) -> None:
        await self._execute("delete", "delete", key)

    async def ping(self) -> bool:
        try:
            return bool(await self._execute("ping", "ping"))
        except StoreUnavailable:
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class InMemoryQuotaStore:
    """Process-local quota store with Redis-like expiry semantics.

    Only atomic within a single event loop; use it for local development and
    tests, never behind more than one worker process.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._counts: Dict[str, int] = {}
        self._expires_at: Dict[str, float] = {}
        self.logger = get_logger("access.quota_store.memory")

    def _evict_if_expired(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._counts.pop(key, None)
            self._expires_at.pop(key, None)

    async def increment(self, key: str) -> int:
        async with self._lock:
            self._evict_if_expired(key)
            self._counts[key] = self._counts.get(key, 0) + 1
            return self._counts[key]

    async def expire(self, key: str, seconds: int) -> None:
        async with self._lock:
            self._evict_if_expired(key)
            if key in self._counts:
                self._expires_at[key] = self._clock() + seconds

    async def ttl(self, key: str) -> int:
        async with self._lock:
            self._evict_if_expired(key)
            if key not in self._counts:
                return -2
            expires_at = self._expires_at.get(key)
            if expires_at is None:
                return -1
            return max(0, int(round(expires_at - self._clock())))

    async def get(self, key: str) -> int:
        async with self._lock:
            self._evict_if_expired(key)
            return self._counts.get(key, 0)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._counts.pop(key, None)
            self._expires_at.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        async with self._lock:
            self._counts.clear()
            self._expires_at.clear()

    def keys(self) -> List[str]:
        return list(self._counts)
