from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    SELLER = "seller"
    ACCOUNTANT = "accountant"
    STOCK_MANAGER = "stock_manager"

    @classmethod
    def parse(cls, value: "str | Role | None") -> "Role | None":
        if isinstance(value, Role):
            return value
        normalized = (value or "").strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        return None


@dataclass(frozen=True)
class RoleDefinition:
    role: Role
    label: str
    description: str
    permissions: frozenset[str]


_STOCK_VIEWER = frozenset({"stock.read", "stock.history"})

ROLE_DEFINITIONS: dict[Role, RoleDefinition] = {
    Role.OWNER: RoleDefinition(
        role=Role.OWNER,
        label="Owner",
        description="Full access to every feature, including company settings.",
        permissions=frozenset({"*"}),
    ),
    Role.ADMIN: RoleDefinition(
        role=Role.ADMIN,
        label="Administrator",
        description="Full management except company settings.",
        permissions=frozenset(
            {
                "users.read",
                "users.write",
                "settings.activities",
                "stock.read",
                "stock.adjust",
                "stock.history",
            }
        ),
    ),
    Role.SELLER: RoleDefinition(
        role=Role.SELLER,
        label="Seller",
        description="Sales and customers; read-only stock of the assigned activity.",
        permissions=_STOCK_VIEWER,
    ),
    Role.ACCOUNTANT: RoleDefinition(
        role=Role.ACCOUNTANT,
        label="Accountant",
        description="Accounting and expenses; read-only stock of the assigned activity.",
        permissions=_STOCK_VIEWER,
    ),
    Role.STOCK_MANAGER: RoleDefinition(
        role=Role.STOCK_MANAGER,
        label="Stock manager",
        description="Stock levels and purchases of the assigned activity.",
        permissions=_STOCK_VIEWER,
    ),
}

# Roles that see every activity of the company regardless of their own assignment.
_ALL_ACTIVITIES_ROLES = frozenset({Role.OWNER, Role.ADMIN})


def role_permissions(role: "str | Role | None") -> set[str]:
    parsed = Role.parse(role)
    if parsed is None:
        return set()
    return set(ROLE_DEFINITIONS[parsed].permissions)


def has_permission(*, role: "str | Role | None", permission: str) -> bool:
    permissions = role_permissions(role)
    if "*" in permissions:
        return True
    return permission in permissions


def can_view_all_activities(role: "str | Role | None") -> bool:
    return Role.parse(role) in _ALL_ACTIVITIES_ROLES


def can_select_activity(role: "str | Role | None") -> bool:
    """Only owners narrow the stock listing through an explicit activity selector."""
    return Role.parse(role) is Role.OWNER
