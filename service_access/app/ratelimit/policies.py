"""
Named rate limit policies.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from shared.errors import ValidationError


class RateLimitPolicyName(str, Enum):
    """Policy identifiers that form part of the public contract."""
    AUTH_ATTEMPTS = "AUTH_ATTEMPTS"
    PASSWORD_RESET = "PASSWORD_RESET"
    API_REQUESTS = "API_REQUESTS"


@dataclass(frozen=True)
class RateLimitPolicy:
    """A fixed request budget over a fixed window."""
    name: RateLimitPolicyName
    max_requests: int
    window_seconds: int
    denial_message: str = "Too many requests. Please try again later."

    def __post_init__(self):
        if self.max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")


RATE_LIMIT_POLICIES: Mapping[RateLimitPolicyName, RateLimitPolicy] = MappingProxyType({
    RateLimitPolicyName.AUTH_ATTEMPTS: RateLimitPolicy(
        name=RateLimitPolicyName.AUTH_ATTEMPTS,
        max_requests=5,
        window_seconds=15 * 60,
        denial_message="Too many authentication attempts. Please try again later.",
    ),
    RateLimitPolicyName.PASSWORD_RESET: RateLimitPolicy(
        name=RateLimitPolicyName.PASSWORD_RESET,
        max_requests=3,
        window_seconds=60 * 60,
        denial_message="Too many password reset attempts. Please try again later.",
    ),
    RateLimitPolicyName.API_REQUESTS: RateLimitPolicy(
        name=RateLimitPolicyName.API_REQUESTS,
        max_requests=100,
        window_seconds=15 * 60,
    ),
})

# Path prefix -> policy applied by the HTTP middleware; longest prefix wins.
PATH_POLICIES: Mapping[str, RateLimitPolicyName] = MappingProxyType({
    "/auth/login": RateLimitPolicyName.AUTH_ATTEMPTS,
    "/auth/password-reset": RateLimitPolicyName.PASSWORD_RESET,
    "/api/": RateLimitPolicyName.API_REQUESTS,
})


def get_policy(
    name: Union[str, RateLimitPolicyName],
    policies: Mapping[RateLimitPolicyName, RateLimitPolicy] = RATE_LIMIT_POLICIES,
) -> RateLimitPolicy:
    """Look up a policy by name, raising ValidationError for unknown names."""
    try:
        return policies[RateLimitPolicyName(name)]
    except (ValueError, KeyError):
        raise ValidationError(
            f"Unknown rate limit policy: {name}",
            details={"policy": str(name), "known": [p.value for p in policies]},
            code="UNKNOWN_POLICY",
        )
