"""
Access service for the Warehouse Access Layer.
"""

from typing import Any, Dict, List, Optional

from fastapi import Query, Request
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.errors import InvalidRoleError, ProfileLookupError, SessionMissingError

from .adapters.auth_client import Profile, SupabaseAuthClient
from .guard.route_guard import RouteGuard
from .ratelimit.limiter import RateLimiter
from .ratelimit.middleware import RateLimitMiddleware
from .ratelimit.policies import RATE_LIMIT_POLICIES
from .ratelimit.quota_store import InMemoryQuotaStore, QuotaStore, RedisQuotaStore
from .rbac.models import Role
from .rbac.service import AuthorizationService


class LoginRequest(BaseModel):
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")


class PasswordResetRequest(BaseModel):
    email: str = Field(..., description="Account email")
    redirect_to: Optional[str] = Field(None, description="Where the reset link should land")


class AuthorizeRequest(BaseModel):
    """Request model for a role permission check."""
    role: str = Field(..., description="Role to evaluate")
    action: str = Field(..., description="Action to perform")
    resource: str = Field(..., description="Resource acted upon")


class AuthorizeResponse(BaseModel):
    role: str
    action: str
    resource: str
    allowed: bool


class AccessService(BaseService):
    """Access service implementation."""

    def __init__(self, quota_store: Optional[QuotaStore] = None,
                 auth_client: Optional[SupabaseAuthClient] = None):
        super().__init__("access", 8020)

        self.quota_store = quota_store or self._build_quota_store()
        self.rate_limiter = RateLimiter(
            self.quota_store,
            store_timeout=self.config.quota_store_timeout_seconds,
            metrics=self.metrics,
        )
        self.rate_limit_middleware = RateLimitMiddleware(
            self.rate_limiter,
            trust_proxy_headers=self.config.trust_proxy_headers,
        )
        self.authorization = AuthorizationService(metrics=self.metrics)
        self.auth_client = auth_client or SupabaseAuthClient(
            self.config.supabase_url,
            anon_key=self.config.supabase_anon_key,
            timeout=self.config.auth_timeout_seconds,
        )

        self.app.middleware("http")(self.rate_limit_middleware.dispatch)
        self._setup_access_routes()

        self.app.state.access_service = self

    def _build_quota_store(self) -> QuotaStore:
        if self.config.quota_backend == "memory":
            self.logger.warning("Using in-memory quota store; limits are not shared across processes")
            return InMemoryQuotaStore()
        return RedisQuotaStore(
            self.config.redis_url,
            socket_timeout=self.config.redis_socket_timeout,
            command_timeout=self.config.redis_command_timeout,
            failure_threshold=self.config.quota_store_failure_threshold,
            recovery_timeout=self.config.quota_store_recovery_timeout,
        )

    @staticmethod
    def _bearer_token(request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:]
        return None

    def route_guard_for(self, request: Request) -> RouteGuard:
        """Build a route guard bound to this request's bearer token."""
        context = self.auth_client.bind(self._bearer_token(request))
        return RouteGuard(
            sessions=context,
            profiles=context,
            login_path=self.config.login_path,
            default_path=self.config.default_path,
            metrics=self.metrics,
        )

    async def resolve_caller(self, request: Request) -> Profile:
        """Resolve the calling user's profile or raise an authentication error."""
        context = self.auth_client.bind(self._bearer_token(request))
        session = await context.get_session()
        if session is None:
            raise SessionMissingError()

        try:
            return await context.get_profile(session.user_id)
        except InvalidRoleError as e:
            raise ProfileLookupError("Profile has an unrecognised role", details=e.details)

    def _setup_access_routes(self):
        """Set up access-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "access",
                "message": "Warehouse Access Layer - Access Service",
                "version": "1.0.0",
                "capabilities": ["rate_limiting", "rbac", "route_guard"]
            }

        @self.app.post("/auth/login")
        async def login(body: LoginRequest):
            """Sign in through the auth provider (rate limited per address)."""
            return await self.auth_client.sign_in(body.email, body.password)

        @self.app.post("/auth/password-reset", status_code=202)
        async def password_reset(body: PasswordResetRequest):
            """Request a password recovery email (rate limited per address)."""
            await self.auth_client.request_password_reset(body.email, body.redirect_to)
            return {"message": "If the account exists, a password reset email has been sent."}

        @self.app.get("/api/v1/navigation")
        async def check_navigation(
            request: Request,
            path: str = Query(..., description="Dashboard path being opened"),
            required_roles: List[str] = Query(default=[], description="Explicit role requirement"),
        ):
            """Evaluate the route guard for the caller's session."""
            guard = self.route_guard_for(request)
            decision = await guard.check(path, required_roles or None)
            return decision.to_dict()

        @self.app.get("/api/v1/roles/{role}/permissions")
        async def get_role_permissions(role: str, resource: Optional[str] = Query(None)):
            """List a role's permissions, or its allowed actions on one resource."""
            parsed = Role.parse(role)
            response: Dict[str, Any] = {
                "role": parsed.value,
                "permissions": sorted(
                    ({"action": p.action, "resource": p.resource}
                     for p in self.authorization.catalog[parsed]),
                    key=lambda p: (p["resource"], p["action"]),
                ),
            }
            if resource is not None:
                response["resource"] = resource
                response["allowed_actions"] = sorted(
                    self.authorization.get_allowed_actions(parsed, resource)
                )
            return response

        @self.app.get("/api/v1/roles/{role}/routes")
        async def get_role_routes(role: str):
            """Routes a role may navigate to."""
            return {"role": Role.parse(role).value, "routes": self.authorization.get_allowed_routes(role)}

        @self.app.get("/api/v1/roles/{role}/capabilities")
        async def get_role_capabilities(role: str):
            """Named capabilities granted to a role."""
            return {"role": Role.parse(role).value, "capabilities": self.authorization.get_capabilities(role)}

        @self.app.post("/api/v1/authorize", response_model=AuthorizeResponse)
        async def authorize(body: AuthorizeRequest):
            """Check whether a role may perform an action on a resource."""
            allowed = self.authorization.validate_action(body.role, body.action, body.resource)
            return AuthorizeResponse(
                role=body.role,
                action=body.action,
                resource=body.resource,
                allowed=allowed,
            )

        @self.app.get("/api/v1/rate-limits/{policy}/{identifier}")
        async def get_rate_limit_status(policy: str, identifier: str, request: Request):
            """Inspect a counter (requires configure/system)."""
            caller = await self.resolve_caller(request)
            status = await self.authorization.guard(
                caller.role, "system", "configure",
                self.rate_limiter.get_status, identifier, policy,
            )
            return {
                "policy": status.policy,
                "identifier": status.identifier,
                "current_count": status.current_count,
                "limit": status.limit,
                "remaining": status.remaining_requests,
                "reset_in_seconds": status.reset_in_seconds,
                "degraded": status.degraded,
            }

        @self.app.delete("/api/v1/rate-limits/{policy}/{identifier}")
        async def reset_rate_limit(policy: str, identifier: str, request: Request):
            """Clear a counter (requires configure/system)."""
            caller = await self.resolve_caller(request)
            reset = await self.authorization.guard(
                caller.role, "system", "configure",
                self.rate_limiter.reset, identifier, policy,
            )
            return {"policy": policy, "identifier": identifier, "reset": reset}

        @self.app.get("/api/v1/rate-limits")
        async def list_policies():
            """Configured rate limit policies."""
            return {
                "policies": [
                    {
                        "name": p.name.value,
                        "max_requests": p.max_requests,
                        "window_seconds": p.window_seconds,
                    }
                    for p in RATE_LIMIT_POLICIES.values()
                ]
            }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check access service dependencies."""
        dependencies = {}

        try:
            dependencies["quota_store"] = "ok" if await self.quota_store.ping() else "error"
        except Exception:
            dependencies["quota_store"] = "error"

        try:
            dependencies["auth_provider"] = "ok" if await self.auth_client.health_check() else "error"
        except Exception:
            dependencies["auth_provider"] = "error"

        return dependencies

    async def stop(self):
        """Release quota store and auth provider connections."""
        await self.quota_store.close()
        await self.auth_client.close()
        self.logger.info("Access service stopped")


def create_app():
    """Create access service application."""
    service = AccessService()
    return service.app


if __name__ == "__main__":
    service = AccessService()
    service.run()
