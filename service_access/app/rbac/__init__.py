"""
Role-based access control package.

- models: Role enum, Permission and Capability value types.
- catalog: Static role -> permission, route -> role and capability tables.
- service: AuthorizationService with lookup, validation and guarded calls.
"""

from .models import Capability, Permission, Role
from .catalog import CAPABILITIES, ROLE_PERMISSIONS, ROUTE_ROLE_REQUIREMENTS, match_route
from .service import AuthorizationService

__all__ = [
    "Capability",
    "Permission",
    "Role",
    "CAPABILITIES",
    "ROLE_PERMISSIONS",
    "ROUTE_ROLE_REQUIREMENTS",
    "match_route",
    "AuthorizationService",
]
