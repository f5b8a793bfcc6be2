"""
Shared pytest fixtures for the Access service tests.
"""

from typing import Optional

import pytest

from prometheus_client import CollectorRegistry

from shared.errors import ProfileLookupError
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock
from service_access.app.adapters.auth_client import Profile, Session
from service_access.app.rbac.models import Role


class FakeAuthContext:
    """In-memory SessionLookup/ProfileLookup pair.

    ``user_id=None`` means no session. ``role`` may be any string so invalid
    profile roles can be exercised; ``profile_error`` forces a lookup failure.
    """

    def __init__(self, user_id: Optional[str] = "user-1", role: Optional[str] = "admin",
                 profile_error: bool = False):
        self.user_id = user_id
        self.role = role
        self.profile_error = profile_error
        self.session_calls = 0
        self.profile_calls = 0

    async def get_session(self) -> Optional[Session]:
        self.session_calls += 1
        if self.user_id is None:
            return None
        return Session(user_id=self.user_id, access_token=f"token-{self.user_id}")

    async def get_profile(self, user_id: str) -> Profile:
        self.profile_calls += 1
        if self.profile_error or self.role is None:
            raise ProfileLookupError(details={"user_id": user_id})
        return Profile(user_id=user_id, role=Role.parse(self.role))


@pytest.fixture
def fake_auth():
    """Factory for FakeAuthContext instances."""
    return FakeAuthContext


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    """Metrics collector on a private registry."""
    return MetricsCollector("access-test", registry=CollectorRegistry())
