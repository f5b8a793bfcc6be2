"""
Fixed-window rate limiter over a shared quota store.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from shared.logging import get_logger
from shared.errors import StoreUnavailable
from shared.metrics import MetricsCollector
from .policies import RATE_LIMIT_POLICIES, RateLimitPolicy, RateLimitPolicyName, get_policy
from .quota_store import QuotaStore


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check; reset_time is epoch milliseconds."""
    allowed: bool
    remaining_requests: int
    reset_time: int
    limit: int
    policy: str
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remainingRequests": self.remaining_requests,
            "resetTime": self.reset_time,
            "limit": self.limit,
            "policy": self.policy,
        }


@dataclass(frozen=True)
class RateLimitStatus:
    """Current counter state without consuming quota."""
    policy: str
    identifier: str
    current_count: int
    limit: int
    remaining_requests: int
    reset_in_seconds: Optional[int]
    degraded: bool = False


class RateLimiter:
    """Distributed fixed-window rate limiter.

    The first increment of a counter opens its window by setting the expiry;
    later increments never touch the expiry, so the window is anchored to the
    first request. When the store is unavailable the limiter fails open.
    """

    def __init__(
        self,
        store: QuotaStore,
        policies: Mapping[RateLimitPolicyName, RateLimitPolicy] = RATE_LIMIT_POLICIES,
        store_timeout: float = 0.5,
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.policies = policies
        self.store_timeout = store_timeout
        self._clock = clock
        self.metrics = metrics
        self.logger = get_logger("access.rate_limiter")

    def _make_key(self, identifier: str, policy: RateLimitPolicy) -> str:
        return f"rate_limit:{policy.name.value}:{identifier}"

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _call_store(self, operation_name: str, operation: Awaitable[Any]) -> Any:
        try:
            if self.metrics:
                with self.metrics.time_operation("quota_store_duration_seconds", operation=operation_name):
                    return await asyncio.wait_for(operation, timeout=self.store_timeout)
            return await asyncio.wait_for(operation, timeout=self.store_timeout)
        except asyncio.TimeoutError:
            raise StoreUnavailable(
                "Quota store did not respond in time",
                details={"operation": operation_name, "timeout_seconds": self.store_timeout},
            )

    async def check_rate_limit(
        self, identifier: str, policy_name: Union[str, RateLimitPolicyName]
    ) -> RateLimitResult:
        """Consume one request from ``identifier``'s budget under ``policy_name``."""
        policy = get_policy(policy_name, self.policies)
        key = self._make_key(identifier, policy)

        try:
            count = await self._call_store("increment", self.store.increment(key))
            if count == 1:
                await self._call_store("expire", self.store.expire(key, policy.window_seconds))
                reset_in = policy.window_seconds
            else:
                reset_in = await self._remaining_window(key, policy)
        except StoreUnavailable as e:
            return self._fail_open(identifier, policy, e)

        allowed = count <= policy.max_requests
        result = RateLimitResult(
            allowed=allowed,
            remaining_requests=max(0, policy.max_requests - count),
            reset_time=self.now_ms() + reset_in * 1000,
            limit=policy.max_requests,
            policy=policy.name.value,
        )

        if self.metrics:
            self.metrics.record_rate_limit_decision(policy.name.value, allowed)

        if not allowed:
            self.logger.warning(
                "Rate limit exceeded",
                identifier=identifier,
                policy=policy.name.value,
                current_count=count,
                limit=policy.max_requests
            )

        return result

    async def _remaining_window(self, key: str, policy: RateLimitPolicy) -> int:
        ttl = await self._call_store("ttl", self.store.ttl(key))
        if ttl == -1:
            # Expiry from the first increment was lost.
            self.logger.warning("Counter without expiry, reapplying window", key=key)
            await self._call_store("expire", self.store.expire(key, policy.window_seconds))
            return policy.window_seconds
        if ttl < 0:
            return policy.window_seconds
        return ttl

    def _fail_open(self, identifier: str, policy: RateLimitPolicy, error: StoreUnavailable) -> RateLimitResult:
        """Allow the request with the full budget when the quota store is down."""
        self.logger.error(
            "Quota store unavailable, failing open",
            identifier=identifier,
            policy=policy.name.value,
            error=error.message,
            details=error.details
        )
        if self.metrics:
            self.metrics.record_store_failure(policy.name.value)

        return RateLimitResult(
            allowed=True,
            remaining_requests=policy.max_requests,
            reset_time=self.now_ms(),
            limit=policy.max_requests,
            policy=policy.name.value,
            degraded=True,
        )

    async def get_status(
        self, identifier: str, policy_name: Union[str, RateLimitPolicyName]
    ) -> RateLimitStatus:
        """Read the counter for ``identifier`` without incrementing it."""
        policy = get_policy(policy_name, self.policies)
        key = self._make_key(identifier, policy)

        try:
            count = await self._call_store("get", self.store.get(key))
            ttl = await self._call_store("ttl", self.store.ttl(key)) if count else -2
        except StoreUnavailable as e:
            self.logger.error("Rate limit status unavailable", policy=policy.name.value, error=e.message)
            return RateLimitStatus(
                policy=policy.name.value,
                identifier=identifier,
                current_count=0,
                limit=policy.max_requests,
                remaining_requests=policy.max_requests,
                reset_in_seconds=None,
                degraded=True,
            )

        return RateLimitStatus(
            policy=policy.name.value,
            identifier=identifier,
            current_count=count,
            limit=policy.max_requests,
            remaining_requests=max(0, policy.max_requests - count),
            reset_in_seconds=ttl if ttl >= 0 else None,
        )

    async def reset(self, identifier: str, policy_name: Union[str, RateLimitPolicyName]) -> bool:
        """Delete the counter for ``identifier``; False when the store is down."""
        policy = get_policy(policy_name, self.policies)
        key = self._make_key(identifier, policy)

        try:
            await self._call_store("delete", self.store.delete(key))
        except StoreUnavailable as e:
            self.logger.error("Rate limit reset failed", policy=policy.name.value, error=e.message)
            return False

        self.logger.info("Rate limit reset", identifier=identifier, policy=policy.name.value)
        return True
