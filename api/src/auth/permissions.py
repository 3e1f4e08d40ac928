"""Role-based access control.

Hierarchical roles of the training platform:
- SUPER_ADMIN (level 3): Platform operators
- ADMIN (level 2): Company administrators, approve orders and enrollments
- SUPERVISOR (level 1): Follow the progress of their workers
- WORKER (level 0): Take courses
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels. Higher level = more permissions."""

    WORKER = "worker"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.WORKER: 0,
    UserRole.SUPERVISOR: 1,
    UserRole.ADMIN: 2,
    UserRole.SUPER_ADMIN: 3,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role, 0 for unknown roles."""
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.SUPERVISOR)
        True
        >>> has_permission("worker", "admin")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN or SUPER_ADMIN."""
    return has_permission(role, UserRole.ADMIN)


def sees_only_own_enrollments(role: UserRole | str) -> bool:
    """Workers may only read their own enrollments."""
    return get_role_level(role) < get_role_level(UserRole.SUPERVISOR)
