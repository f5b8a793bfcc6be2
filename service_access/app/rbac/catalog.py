"""
Static authorization tables.

All three tables are read-only mappings built at import time and keyed by the
same Role enum. They are configuration, not logic; the authorization service
only ever looks values up in them.
"""

from types import MappingProxyType
from typing import FrozenSet, Mapping

from .models import Capability, Permission, Role


def _perms(*pairs) -> FrozenSet[Permission]:
    return frozenset(Permission(action, resource) for action, resource in pairs)


ALL_ROLES: FrozenSet[Role] = frozenset(Role)

ROLE_PERMISSIONS: Mapping[Role, FrozenSet[Permission]] = MappingProxyType({
    Role.ADMIN: _perms(
        ("manage", "inventory"),
        ("manage", "storeroom"),
        ("approve", "transaction"),
        ("configure", "system"),
    ),
    Role.SUPERVISOR: _perms(
        ("view", "inventory"),
        ("manage", "storeroom"),
        ("approve", "transaction"),
    ),
    Role.STOREMAN: _perms(
        ("view", "inventory"),
        ("create", "transaction"),
    ),
    Role.CLERK: _perms(
        ("create", "transaction"),
        ("view", "transaction"),
    ),
    Role.INVENTORY_MANAGER: _perms(
        ("view", "inventory"),
        ("analyze", "inventory"),
        ("export", "inventory"),
    ),
    Role.WAREHOUSE_MANAGER: _perms(
        ("view", "storeroom"),
        ("manage", "storeroom"),
    ),
    Role.FINANCIAL_CONTROLLER: _perms(
        ("view", "transaction"),
        ("analyze", "transaction"),
    ),
})

# Path prefix -> roles allowed to view it. Sub-paths inherit the entry of
# their closest listed ancestor.
ROUTE_ROLE_REQUIREMENTS: Mapping[str, FrozenSet[Role]] = MappingProxyType({
    "/dashboard": ALL_ROLES,
    "/transactions": frozenset({
        Role.ADMIN, Role.SUPERVISOR, Role.STOREMAN, Role.CLERK, Role.FINANCIAL_CONTROLLER,
    }),
    "/inventory": frozenset({
        Role.ADMIN, Role.SUPERVISOR, Role.INVENTORY_MANAGER, Role.WAREHOUSE_MANAGER,
    }),
    "/storerooms": frozenset({Role.ADMIN, Role.SUPERVISOR, Role.WAREHOUSE_MANAGER}),
    "/settings": frozenset({Role.ADMIN}),
    "/users": frozenset({Role.ADMIN}),
    "/reports": frozenset({Role.ADMIN, Role.FINANCIAL_CONTROLLER}),
    "/approvals": frozenset({Role.ADMIN, Role.SUPERVISOR}),
    "/analytics": frozenset({Role.ADMIN, Role.INVENTORY_MANAGER, Role.FINANCIAL_CONTROLLER}),
})


def _capability(name: str, description: str, *roles: Role) -> Capability:
    return Capability(name=name, roles=frozenset(roles), description=description)


CAPABILITIES: Mapping[str, Capability] = MappingProxyType({
    cap.name: cap for cap in (
        _capability("transaction_create", "Ability to create new transactions",
                    Role.ADMIN, Role.SUPERVISOR, Role.STOREMAN, Role.CLERK),
        _capability("transaction_approve", "Ability to approve or reject transactions",
                    Role.ADMIN, Role.SUPERVISOR),
        _capability("transaction_view_all", "View all transactions across the system",
                    Role.ADMIN, Role.SUPERVISOR, Role.FINANCIAL_CONTROLLER),
        _capability("inventory_view", "View inventory details",
                    Role.ADMIN, Role.SUPERVISOR, Role.STOREMAN, Role.INVENTORY_MANAGER),
        _capability("inventory_update", "Update inventory records",
                    Role.ADMIN, Role.SUPERVISOR, Role.INVENTORY_MANAGER),
        _capability("inventory_transfer", "Transfer inventory between storerooms",
                    Role.ADMIN, Role.SUPERVISOR, Role.WAREHOUSE_MANAGER),
        _capability("storeroom_manage", "Manage storeroom configurations",
                    Role.ADMIN, Role.SUPERVISOR, Role.WAREHOUSE_MANAGER),
        _capability("storeroom_access", "Access specific storeroom details",
                    Role.ADMIN, Role.SUPERVISOR, Role.STOREMAN, Role.WAREHOUSE_MANAGER),
        _capability("system_settings", "Modify system-wide settings",
                    Role.ADMIN),
        _capability("user_management", "Create, modify, or delete user accounts",
                    Role.ADMIN),
        _capability("reports_generate", "Generate system reports",
                    Role.ADMIN, Role.FINANCIAL_CONTROLLER, Role.INVENTORY_MANAGER),
    )
})


def match_route(path: str, route_requirements: Mapping[str, FrozenSet[Role]] = ROUTE_ROLE_REQUIREMENTS):
    """Return the route-table key governing ``path``, or None.

    Exact matches win; otherwise the longest listed prefix that ends on a
    path-segment boundary applies, so "/transactions/receipt" inherits
    "/transactions" but "/transactionsx" does not.
    """
    normalized = path.split("?", 1)[0].split("#", 1)[0]
    if len(normalized) > 1:
        normalized = normalized.rstrip("/")

    if normalized in route_requirements:
        return normalized

    best = None
    for prefix in route_requirements:
        if normalized.startswith(prefix.rstrip("/") + "/"):
            if best is None or len(prefix) > len(best):
                best = prefix
    return best
