"""
Authorization service answering role/permission questions.
"""

import functools
from typing import Any, Callable, FrozenSet, List, Mapping, Optional, TypeVar, Union

from shared.logging import get_logger
from shared.errors import InvalidRoleError, UnauthorizedError
from shared.metrics import MetricsCollector
from .catalog import CAPABILITIES, ROLE_PERMISSIONS, ROUTE_ROLE_REQUIREMENTS
from .models import Capability, Permission, Role

F = TypeVar("F", bound=Callable[..., Any])
RoleLike = Union[Role, str]


class AuthorizationService:
    """Single source of truth for role permission checks.

    Every decision is a lookup in the static catalog: there are no wildcards
    and no hierarchy between actions, and matching is exact and case-sensitive.
    ``guard`` is the enforcement point for privileged operations.
    """

    def __init__(
        self,
        catalog: Mapping[Role, FrozenSet[Permission]] = ROLE_PERMISSIONS,
        route_requirements: Mapping[str, FrozenSet[Role]] = ROUTE_ROLE_REQUIREMENTS,
        capabilities: Mapping[str, Capability] = CAPABILITIES,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.catalog = catalog
        self.route_requirements = route_requirements
        self.capabilities = capabilities
        self.metrics = metrics
        self.logger = get_logger("access.authorization")

    def _permissions_for(self, role: RoleLike) -> FrozenSet[Permission]:
        if not Role.is_valid(role):
            return frozenset()
        return self.catalog.get(Role.parse(role), frozenset())

    def has_permission(self, role: RoleLike, action: str, resource: str) -> bool:
        """True iff ``role`` holds exactly (action, resource)."""
        return Permission(action, resource) in self._permissions_for(role)

    def get_allowed_actions(self, role: RoleLike, resource: str) -> FrozenSet[str]:
        """All actions ``role`` may perform on ``resource``."""
        return frozenset(
            perm.action for perm in self._permissions_for(role)
            if perm.resource == resource
        )

    def validate_action(self, role: RoleLike, action: str, resource: str) -> bool:
        """Check a permission, refusing to evaluate unknown roles.

        Raises InvalidRoleError for values outside the Role set. A denial is
        returned as False and logged as a security warning, not an error.
        """
        parsed = Role.parse(role)
        allowed = self.has_permission(parsed, action, resource)

        if self.metrics:
            self.metrics.record_authorization(resource, action, allowed)

        if not allowed:
            self.logger.warning(
                "Permission denied",
                role=parsed.value,
                action=action,
                resource=resource
            )

        return allowed

    def guard(self, role: RoleLike, resource: str, action: str,
              operation: Callable[..., Any], *args, **kwargs) -> Any:
        """Run ``operation`` only if ``role`` may perform ``action`` on ``resource``.

        The operation's return value (including a coroutine, for async
        operations) and its exceptions pass through unchanged. On denial
        UnauthorizedError is raised and the operation is never invoked.
        """
        if not self.validate_action(role, action, resource):
            raise UnauthorizedError(str(Role.parse(role)), action, resource)
        return operation(*args, **kwargs)

    def permission_wrapper(self, role: RoleLike, resource: str, action: str, fn: F) -> F:
        """Wrap ``fn`` so every call goes through ``guard``."""

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            return self.guard(role, resource, action, fn, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    def get_allowed_routes(self, role: RoleLike) -> List[str]:
        """Route prefixes ``role`` may navigate to, in table order."""
        parsed = Role.parse(role)
        return [path for path, roles in self.route_requirements.items() if parsed in roles]

    def has_capability(self, role: RoleLike, name: str) -> bool:
        capability = self.capabilities.get(name)
        if capability is None or not Role.is_valid(role):
            return False
        return Role.parse(role) in capability.roles

    def get_capabilities(self, role: RoleLike) -> List[str]:
        parsed = Role.parse(role)
        return [name for name, cap in self.capabilities.items() if parsed in cap.roles]
