"""
Route guard deciding whether a session may view a dashboard path.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional

from pydantic import BaseModel

from shared.logging import get_logger, set_user_context
from shared.errors import AccessLayerException
from shared.metrics import MetricsCollector
from ..adapters.auth_client import ProfileLookup, SessionLookup
from ..rbac.catalog import ROUTE_ROLE_REQUIREMENTS, match_route
from ..rbac.models import Role


class GuardState(str, Enum):
    """Guard states; every check starts in CHECKING and ends in one of the others."""
    CHECKING = "checking"
    REDIRECTING = "redirecting"
    DENIED = "denied"
    AUTHORIZED = "authorized"


class AccessDeniedView(BaseModel):
    """What the client renders in place of a forbidden page."""
    title: str = "Access Denied"
    message: str = "You do not have permission to access this page."
    redirect_path: str = "/dashboard"


@dataclass(frozen=True)
class GuardDecision:
    state: GuardState
    path: str
    role: Optional[Role] = None
    redirect_to: Optional[str] = None
    denial: Optional[AccessDeniedView] = None

    @property
    def render_content(self) -> bool:
        return self.state == GuardState.AUTHORIZED

    def to_dict(self):
        return {
            "state": self.state.value,
            "path": self.path,
            "role": self.role.value if self.role else None,
            "redirect_to": self.redirect_to,
            "render_content": self.render_content,
            "denial": self.denial.model_dump() if self.denial else None,
        }


class RouteGuard:
    """Evaluates Checking -> {Redirecting, Denied, Authorized} for one path.

    Decisions are never cached; callers re-run ``check`` whenever the path,
    the session or the explicit role requirement changes.
    """

    def __init__(
        self,
        sessions: SessionLookup,
        profiles: ProfileLookup,
        route_requirements: Mapping[str, FrozenSet[Role]] = ROUTE_ROLE_REQUIREMENTS,
        login_path: str = "/login",
        default_path: str = "/dashboard",
        metrics: Optional[MetricsCollector] = None,
    ):
        self.sessions = sessions
        self.profiles = profiles
        self.route_requirements = route_requirements
        self.login_path = login_path
        self.default_path = default_path
        self.metrics = metrics
        self.logger = get_logger("access.route_guard")

    def required_roles(self, path: str, required_roles: Optional[Iterable[Role]] = None) -> FrozenSet[Role]:
        """Explicit roles take precedence over the route table; empty means open."""
        explicit = frozenset(Role.parse(role) for role in (required_roles or ()))
        if explicit:
            return explicit

        route = match_route(path, self.route_requirements)
        if route is None:
            return frozenset()
        return self.route_requirements[route]

    async def check(self, path: str, required_roles: Optional[Iterable[Role]] = None) -> GuardDecision:
        # Resolve the requirement first so an invalid explicit role fails loudly.
        effective = self.required_roles(path, required_roles)
        self.logger.debug("Checking route access", path=path, state=GuardState.CHECKING.value)

        try:
            session = await self.sessions.get_session()
        except AccessLayerException as e:
            self.logger.warning("Session lookup failed", path=path, code=e.code, error=e.message)
            session = None

        if session is None:
            return self._finish(GuardDecision(
                state=GuardState.REDIRECTING, path=path, redirect_to=self.login_path,
            ))

        try:
            profile = await self.profiles.get_profile(session.user_id)
        except AccessLayerException as e:
            self.logger.error(
                "Authentication check failed",
                path=path,
                user_id=session.user_id,
                code=e.code,
                error=e.message
            )
            return self._finish(GuardDecision(
                state=GuardState.REDIRECTING, path=path, redirect_to=self.login_path,
            ))

        role = profile.role
        set_user_context(user_id=session.user_id, role=role.value)

        if effective and role not in effective:
            self.logger.warning(
                "Route access denied",
                path=path,
                role=role.value,
                required_roles=sorted(r.value for r in effective)
            )
            return self._finish(GuardDecision(
                state=GuardState.DENIED,
                path=path,
                role=role,
                denial=AccessDeniedView(redirect_path=self.default_path),
            ))

        return self._finish(GuardDecision(state=GuardState.AUTHORIZED, path=path, role=role))

    def _finish(self, decision: GuardDecision) -> GuardDecision:
        if self.metrics:
            self.metrics.record_route_guard(decision.state.value)
        return decision
