"""
Role and permission data models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Union

from shared.errors import InvalidRoleError


class Role(str, Enum):
    """Fixed set of warehouse user roles.

    Values are the canonical hyphenated spelling used everywhere, including
    the route table and profile records.
    """
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    STOREMAN = "storeman"
    CLERK = "clerk"
    INVENTORY_MANAGER = "inventory-manager"
    WAREHOUSE_MANAGER = "warehouse-manager"
    FINANCIAL_CONTROLLER = "financial-controller"

    @classmethod
    def parse(cls, value: Union[str, "Role"]) -> "Role":
        """Return the Role for ``value`` or raise InvalidRoleError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidRoleError(value)

    @classmethod
    def is_valid(cls, value: object) -> bool:
        try:
            cls.parse(value)
        except InvalidRoleError:
            return False
        return True

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Permission:
    """An (action, resource) pair a role may perform."""
    action: str
    resource: str


@dataclass(frozen=True)
class Capability:
    """A named, coarse-grained permission granted to a set of roles."""
    name: str
    roles: FrozenSet[Role]
    description: str = ""
