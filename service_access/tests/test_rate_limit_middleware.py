"""
Unit tests for RateLimitMiddleware.
"""

import pytest
from unittest.mock import MagicMock
from fastapi import FastAPI
from fastapi.testclient import TestClient

from service_access.app.ratelimit.limiter import RateLimiter
from service_access.app.ratelimit.middleware import RateLimitMiddleware
from service_access.app.ratelimit.policies import RateLimitPolicyName
from service_access.app.ratelimit.quota_store import InMemoryQuotaStore
from shared.test_helpers import FailingQuotaStore


def build_app(rate_limiter: RateLimiter, trust_proxy_headers: bool = False) -> FastAPI:
    app = FastAPI()
    middleware = RateLimitMiddleware(rate_limiter, trust_proxy_headers=trust_proxy_headers)
    app.middleware("http")(middleware.dispatch)

    @app.post("/auth/login")
    async def login():
        return {"ok": True}

    @app.post("/auth/password-reset")
    async def password_reset():
        return {"ok": True}

    @app.get("/api/v1/items")
    async def items():
        return {"items": []}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


class TestRateLimitMiddleware:
    """Test cases for RateLimitMiddleware."""

    @pytest.fixture
    def store(self, clock):
        return InMemoryQuotaStore(clock=clock)

    @pytest.fixture
    def rate_limiter(self, store, clock):
        return RateLimiter(store, clock=clock)

    @pytest.fixture
    def client(self, rate_limiter):
        return TestClient(build_app(rate_limiter))

    def test_login_denied_after_five_attempts(self, client, clock):
        for _ in range(5):
            assert client.post("/auth/login").status_code == 200

        response = client.post("/auth/login")

        assert response.status_code == 429
        assert response.json() == {
            "error": "Too many authentication attempts. Please try again later.",
            "resetTime": int(clock() * 1000) + 900 * 1000,
        }
        assert response.headers["Retry-After"] == "900"

    def test_password_reset_has_own_budget(self, client):
        for _ in range(5):
            client.post("/auth/login")

        for _ in range(3):
            assert client.post("/auth/password-reset").status_code == 200

        response = client.post("/auth/password-reset")
        assert response.status_code == 429
        assert response.json()["error"] == "Too many password reset attempts. Please try again later."

    def test_api_requests_use_generic_message(self, rate_limiter, store):
        client = TestClient(build_app(rate_limiter))
        for _ in range(100):
            client.get("/api/v1/items")

        response = client.get("/api/v1/items")

        assert response.status_code == 429
        assert response.json()["error"] == "Too many requests. Please try again later."

    def test_unmatched_path_is_not_counted(self, client, store):
        for _ in range(10):
            assert client.get("/health").status_code == 200
        assert store.keys() == []

    def test_allowed_response_is_untouched(self, client):
        response = client.post("/auth/login")

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert "Retry-After" not in response.headers

    def test_store_outage_passes_requests(self, clock):
        client = TestClient(build_app(RateLimiter(FailingQuotaStore(), clock=clock)))

        for _ in range(10):
            assert client.post("/auth/login").status_code == 200

    def test_proxy_headers_ignored_by_default(self, client, store):
        client.post("/auth/login", headers={"X-Forwarded-For": "203.0.113.9"})
        assert store.keys() == ["rate_limit:AUTH_ATTEMPTS:testclient"]

    def test_proxy_headers_used_when_trusted(self, rate_limiter, store):
        client = TestClient(build_app(rate_limiter, trust_proxy_headers=True))

        client.post("/auth/login", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
        client.post("/auth/login", headers={"X-Real-IP": "203.0.113.10"})

        assert sorted(store.keys()) == [
            "rate_limit:AUTH_ATTEMPTS:203.0.113.10",
            "rate_limit:AUTH_ATTEMPTS:203.0.113.9",
        ]


class TestClientIdentification:
    """Test cases for policy and client resolution."""

    @pytest.fixture
    def middleware(self, clock):
        return RateLimitMiddleware(RateLimiter(InMemoryQuotaStore(clock=clock), clock=clock))

    def test_resolve_policy(self, middleware):
        assert middleware.resolve_policy("/auth/login") == RateLimitPolicyName.AUTH_ATTEMPTS
        assert middleware.resolve_policy("/auth/password-reset") == RateLimitPolicyName.PASSWORD_RESET
        assert middleware.resolve_policy("/api/v1/roles/admin/routes") == RateLimitPolicyName.API_REQUESTS
        assert middleware.resolve_policy("/dashboard") is None

    def test_missing_client_address_is_unknown(self, middleware):
        request = MagicMock()
        request.headers = {}
        request.client = None

        assert middleware.get_client_id(request) == "unknown"

    def test_policy_prefixes_match_whole_segments(self, middleware):
        assert middleware.resolve_policy("/auth/login-sso") is None
        assert middleware.resolve_policy("/auth/loginx") is None
        assert middleware.resolve_policy("/auth/password-reset-confirm") is None
        assert middleware.resolve_policy("/auth/login/") == RateLimitPolicyName.AUTH_ATTEMPTS
        assert middleware.resolve_policy("/apix/v1") is None
