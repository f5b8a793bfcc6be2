"""
Client for the backend-as-a-service auth provider (Supabase-compatible REST).

The provider owns users, sessions and the ``profiles`` table; this module
only reads them. Lookups are exposed through the SessionLookup and
ProfileLookup protocols consumed by the route guard.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from shared.logging import get_logger
from shared.errors import (
    AuthenticationError,
    ExternalServiceError,
    ProfileLookupError,
    ValidationError,
)
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from ..rbac.models import Role


@dataclass(frozen=True)
class Session:
    """Proof of authentication for one user."""
    user_id: str
    access_token: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Profile:
    user_id: str
    role: Role


class SessionLookup(Protocol):
    async def get_session(self) -> Optional[Session]:
        ...


class ProfileLookup(Protocol):
    async def get_profile(self, user_id: str) -> Profile:
        ...


class SupabaseAuthClient:
    """Client for communicating with the auth provider."""

    SERVICE = "auth_provider"

    def __init__(
        self,
        base_url: str,
        anon_key: Optional[str] = None,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self._client = client
        self.logger = get_logger("access.auth_client")
        self.circuit_breaker = CircuitBreaker(
            name="auth_provider",
            failure_threshold=3,
            recovery_timeout=30.0,
            tracked_exceptions=(httpx.HTTPError,),
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.anon_key:
            headers["apikey"] = self.anon_key
        bearer = access_token or self.anon_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request; 5xx and transport errors count against the breaker."""

        async def _send() -> httpx.Response:
            response = await self._get_client().request(method, path, **kwargs)
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        try:
            return await self.circuit_breaker.call(_send)
        except CircuitBreakerOpenException as e:
            raise ExternalServiceError(self.SERVICE, str(e))
        except httpx.HTTPError as e:
            self.logger.error("Auth provider HTTP error", method=method, path=path, error=str(e))
            raise ExternalServiceError(self.SERVICE, "unavailable", details={"http_error": str(e)})

    async def get_user(self, access_token: str) -> Optional[Session]:
        """Resolve an access token to a session; None when the token is not valid."""
        response = await self._request("GET", "/auth/v1/user", headers=self._headers(access_token))

        if response.status_code in (401, 403):
            self.logger.info("Access token rejected by auth provider", status_code=response.status_code)
            return None
        if response.status_code != 200:
            raise ExternalServiceError(
                self.SERVICE,
                f"unexpected status {response.status_code}",
                details={"status_code": response.status_code},
            )

        data = response.json()
        user_id = data.get("id")
        if not user_id:
            return None
        return Session(user_id=user_id, access_token=access_token, email=data.get("email"))

    async def get_profile(self, user_id: str, access_token: Optional[str] = None) -> Profile:
        """Fetch the caller's profile row; its ``role`` must be a known Role."""
        response = await self._request(
            "GET",
            "/rest/v1/profiles",
            params={"id": f"eq.{user_id}", "select": "role"},
            headers=self._headers(access_token),
        )

        if response.status_code != 200:
            raise ProfileLookupError(details={"user_id": user_id, "status_code": response.status_code})

        rows = response.json()
        if not rows:
            raise ProfileLookupError("User profile not found", details={"user_id": user_id})

        return Profile(user_id=user_id, role=Role.parse(rows[0].get("role")))

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Exchange email/password for a token pair."""
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
        )

        if response.status_code in (400, 401):
            self.logger.info("Sign-in rejected", status_code=response.status_code)
            raise AuthenticationError("Invalid login credentials")
        if response.status_code != 200:
            raise ExternalServiceError(
                self.SERVICE,
                f"unexpected status {response.status_code}",
                details={"status_code": response.status_code},
            )

        return response.json()

    async def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None:
        """Ask the provider to send a password recovery email."""
        params = {"redirect_to": redirect_to} if redirect_to else None
        response = await self._request(
            "POST",
            "/auth/v1/recover",
            params=params,
            json={"email": email},
            headers=self._headers(),
        )

        if response.status_code == 422 or response.status_code == 400:
            raise ValidationError("Invalid password reset request", details={"status_code": response.status_code})
        if response.status_code != 200:
            raise ExternalServiceError(
                self.SERVICE,
                f"unexpected status {response.status_code}",
                details={"status_code": response.status_code},
            )

    def bind(self, access_token: Optional[str]) -> "BearerAuthContext":
        """Bind lookups to one request's access token."""
        return BearerAuthContext(self, access_token)

    async def health_check(self) -> bool:
        try:
            response = await self._request("GET", "/auth/v1/health", headers=self._headers())
            return response.status_code == 200
        except ExternalServiceError:
            return False

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class BearerAuthContext:
    """Session and profile lookups for a single bearer token."""

    def __init__(self, client: SupabaseAuthClient, access_token: Optional[str]):
        self.client = client
        self.access_token = access_token

    async def get_session(self) -> Optional[Session]:
        if not self.access_token:
            return None
        return await self.client.get_user(self.access_token)

    async def get_profile(self, user_id: str) -> Profile:
        return await self.client.get_profile(user_id, self.access_token)
