"""
Rate limiting package for the Access service.

Holds the named policies, the quota stores that back them, the fixed-window
limiter and the HTTP middleware that enforces per-address request budgets.
"""

from .policies import PATH_POLICIES, RATE_LIMIT_POLICIES, RateLimitPolicy, RateLimitPolicyName, get_policy
from .quota_store import InMemoryQuotaStore, QuotaStore, RedisQuotaStore
from .limiter import RateLimiter, RateLimitResult, RateLimitStatus
from .middleware import RateLimitMiddleware

__all__ = [
    "PATH_POLICIES",
    "RATE_LIMIT_POLICIES",
    "RateLimitPolicy",
    "RateLimitPolicyName",
    "get_policy",
    "QuotaStore",
    "RedisQuotaStore",
    "InMemoryQuotaStore",
    "RateLimiter",
    "RateLimitResult",
    "RateLimitStatus",
    "RateLimitMiddleware",
]
