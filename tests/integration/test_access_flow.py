"""
Integration tests for the Access service flow.

Runs the whole service in-process over ASGI with the in-memory quota store
and a scripted auth provider.
"""

import httpx
import pytest
import pytest_asyncio

from service_access.app.adapters.auth_client import SupabaseAuthClient
from service_access.app.main import AccessService
from service_access.app.ratelimit.quota_store import InMemoryQuotaStore
from shared.test_helpers import TestDataFactory

AUTH_URL = "https://auth.warehouse.test"


class ScriptedProvider:
    """Auth provider whose profile roles can be changed between requests."""

    def __init__(self):
        self.users = TestDataFactory.users_by_token()
        self.role_overrides = {}
        self.down = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            return httpx.Response(503, json={})

        token = request.headers.get("Authorization", "")[len("Bearer "):]
        user = self.users.get(token)

        if request.url.path == "/auth/v1/user":
            if user is None:
                return httpx.Response(401, json={})
            return httpx.Response(200, json={"id": user.user_id, "email": user.email})

        if request.url.path == "/rest/v1/profiles":
            if user is None:
                return httpx.Response(401, json={})
            role = self.role_overrides.get(user.user_id, user.role)
            return httpx.Response(200, json=[{"role": role}])

        if request.url.path == "/auth/v1/token":
            body = request.read()
            if b"wrong" in body:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "token-clerk"})

        return httpx.Response(200, json={})


class TestAccessFlow:
    """Integration tests for the complete access flow."""

    @pytest.fixture
    def provider(self):
        return ScriptedProvider()

    @pytest.fixture
    def service(self, provider):
        http_client = httpx.AsyncClient(base_url=AUTH_URL, transport=httpx.MockTransport(provider))
        auth_client = SupabaseAuthClient(AUTH_URL, anon_key="anon-key", client=http_client)
        return AccessService(quota_store=InMemoryQuotaStore(), auth_client=auth_client)

    @pytest_asyncio.fixture
    async def client(self, service):
        transport = httpx.ASGITransport(app=service.app, client=("198.51.100.20", 40000))
        async with httpx.AsyncClient(transport=transport, base_url="http://access.test") as client:
            yield client

    @pytest.mark.asyncio
    async def test_sign_in_then_navigate(self, client):
        """Sign in, then walk the dashboard as the returned user."""
        login = await client.post("/auth/login", json={"email": "clerk@warehouse.example.com", "password": "pw"})
        assert login.status_code == 200
        headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

        expectations = {
            "/dashboard": "authorized",
            "/transactions": "authorized",
            "/transactions/receipt/9": "authorized",
            "/inventory": "denied",
            "/settings": "denied",
        }
        for path, state in expectations.items():
            response = await client.get("/api/v1/navigation", params={"path": path}, headers=headers)
            assert response.json()["state"] == state, path

    @pytest.mark.asyncio
    async def test_brute_force_login_is_cut_off(self, client):
        body = {"email": "admin@warehouse.example.com", "password": "wrong"}

        statuses = [(await client.post("/auth/login", json=body)).status_code for _ in range(6)]

        assert statuses == [401] * 5 + [429]

    @pytest.mark.asyncio
    async def test_role_change_is_seen_on_next_check(self, client, provider):
        headers = {"Authorization": "Bearer token-supervisor"}

        first = await client.get("/api/v1/navigation", params={"path": "/approvals"}, headers=headers)
        assert first.json()["state"] == "authorized"

        provider.role_overrides["user-supervisor"] = "clerk"
        second = await client.get("/api/v1/navigation", params={"path": "/approvals"}, headers=headers)
        assert second.json()["state"] == "denied"

        provider.role_overrides["user-supervisor"] = "supervisor_legacy"
        third = await client.get("/api/v1/navigation", params={"path": "/approvals"}, headers=headers)
        assert third.json()["state"] == "redirecting"

    @pytest.mark.asyncio
    async def test_provider_outage_redirects_to_login(self, client, provider):
        provider.down = True

        response = await client.get(
            "/api/v1/navigation", params={"path": "/dashboard"}, headers={"Authorization": "Bearer token-admin"}
        )

        assert response.json()["state"] == "redirecting"
        assert response.json()["redirect_to"] == "/login"

    @pytest.mark.asyncio
    async def test_admin_unlocks_blocked_address(self, client):
        body = {"email": "clerk@warehouse.example.com", "password": "pw"}
        for _ in range(6):
            await client.post("/auth/login", json=body)
        assert (await client.post("/auth/login", json=body)).status_code == 429

        admin = {"Authorization": "Bearer token-admin"}
        status = await client.get("/api/v1/rate-limits/AUTH_ATTEMPTS/198.51.100.20", headers=admin)
        assert status.json()["remaining"] == 0

        clerk = {"Authorization": "Bearer token-clerk"}
        forbidden = await client.delete("/api/v1/rate-limits/AUTH_ATTEMPTS/198.51.100.20", headers=clerk)
        assert forbidden.status_code == 403

        reset = await client.delete("/api/v1/rate-limits/AUTH_ATTEMPTS/198.51.100.20", headers=admin)
        assert reset.json()["reset"] is True
        assert (await client.post("/auth/login", json=body)).status_code == 200
