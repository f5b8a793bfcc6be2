"""
HTTP middleware enforcing rate limit policies per caller address.
"""

from typing import Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from shared.logging import get_logger
from .limiter import RateLimiter
from .policies import PATH_POLICIES, RateLimitPolicyName, get_policy


class RateLimitMiddleware:
    """Rate limiting middleware for FastAPI.

    Register with ``app.middleware("http")(middleware.dispatch)``. Requests on
    paths without a policy, and requests within budget, pass through untouched.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        path_policies: Mapping[str, RateLimitPolicyName] = PATH_POLICIES,
        trust_proxy_headers: bool = False,
    ):
        self.rate_limiter = rate_limiter
        self.trust_proxy_headers = trust_proxy_headers
        # Longest prefix first so "/auth/login" beats a broader "/auth/" rule.
        self._path_policies = sorted(path_policies.items(), key=lambda item: len(item[0]), reverse=True)
        self.logger = get_logger("access.rate_limit_middleware")

    def resolve_policy(self, path: str) -> Optional[RateLimitPolicyName]:
        for prefix, policy in self._path_policies:
            # Prefixes match whole path segments only.
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return policy
        return None

    def get_client_id(self, request: Request) -> str:
        """Extract the caller's network address."""
        if self.trust_proxy_headers:
            forwarded_for = request.headers.get("X-Forwarded-For")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()

            real_ip = request.headers.get("X-Real-IP")
            if real_ip:
                return real_ip

        return request.client.host if request.client and request.client.host else "unknown"

    async def dispatch(self, request: Request, call_next):
        policy_name = self.resolve_policy(request.url.path)
        if policy_name is None:
            return await call_next(request)

        client_id = self.get_client_id(request)
        result = await self.rate_limiter.check_rate_limit(client_id, policy_name)

        if not result.allowed:
            policy = get_policy(policy_name, self.rate_limiter.policies)
            retry_after = max(0, (result.reset_time - self.rate_limiter.now_ms()) // 1000)
            self.logger.warning(
                "Request rejected by rate limit",
                client_id=client_id,
                path=request.url.path,
                policy=policy_name.value
            )
            return JSONResponse(
                status_code=429,
                content={"error": policy.denial_message, "resetTime": result.reset_time},
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
