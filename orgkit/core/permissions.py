"""
Role-based authorization policy.

Pure functions over a static table. Every privileged service calls one of
the guards below through ``require`` before it touches the store.
"""

from __future__ import annotations

from typing import Optional

from orgkit.core.errors import Forbidden

Permission = tuple[str, str]

ROLE_PERMISSIONS: dict[str, frozenset[Permission]] = {
    "owner": frozenset(
        {
            ("organization", "read"),
            ("organization", "update"),
            ("organization", "delete"),
            ("organization", "billing"),
            ("users", "read"),
            ("users", "create"),
            ("users", "update"),
            ("users", "delete"),
            ("users", "invite"),
            ("features", "read"),
            ("features", "update"),
            ("analytics", "read"),
            ("reports", "read"),
        }
    ),
    "admin": frozenset(
        {
            ("organization", "read"),
            ("organization", "update"),
            ("users", "read"),
            ("users", "create"),
            ("users", "update"),
            ("users", "invite"),
            ("features", "read"),
            ("analytics", "read"),
            ("reports", "read"),
        }
    ),
    "member": frozenset(
        {
            ("organization", "read"),
            ("users", "read"),
            ("features", "read"),
        }
    ),
}

# (resource, action) -> page route, in display order
_ROUTE_PERMISSIONS: list[tuple[Permission, str]] = [
    (("users", "read"), "/team"),
    (("users", "invite"), "/invite"),
    (("organization", "update"), "/settings"),
    (("organization", "billing"), "/billing"),
    (("analytics", "read"), "/analytics"),
]


def _role_value(role) -> str:
    return getattr(role, "value", role) or ""


def has_permission(role, resource: str, action: str) -> bool:
    return (resource, action) in ROLE_PERMISSIONS.get(_role_value(role), frozenset())


def get_role_permissions(role) -> list[Permission]:
    return sorted(ROLE_PERMISSIONS.get(_role_value(role), frozenset()))


def get_accessible_routes(role) -> list[str]:
    routes = ["/dashboard", "/profile"]
    granted = ROLE_PERMISSIONS.get(_role_value(role), frozenset())
    routes.extend(route for perm, route in _ROUTE_PERMISSIONS if perm in granted)
    return routes


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def can_invite_members(role) -> bool:
    return has_permission(role, "users", "invite")


def can_manage_members(role) -> bool:
    return has_permission(role, "users", "update")


def can_change_roles(role) -> bool:
    return has_permission(role, "users", "update")


def can_remove_members(
    acting_role,
    target_role,
    *,
    active_owner_count: Optional[int] = None,
    removing_self: bool = False,
) -> bool:
    """users/delete, minus removing the sole owner or an owner removing themselves."""
    if not has_permission(acting_role, "users", "delete"):
        return False
    if _role_value(target_role) == "owner" and active_owner_count is not None and active_owner_count <= 1:
        return False
    if removing_self and _role_value(acting_role) == "owner":
        return False
    return True


def can_transfer_ownership(role) -> bool:
    return _role_value(role) == "owner"


def can_view_audit_log(role) -> bool:
    return _role_value(role) in ("owner", "admin")


def require(allowed: bool, message: str = "You do not have permission to perform this action") -> None:
    if not allowed:
        raise Forbidden(message)
