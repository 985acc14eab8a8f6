"""
Role based permissions.

Permissions are "<resource>:<action>" strings; SUPER_ADMIN holds the
wildcard "*".
"""
from typing import Dict, FrozenSet, List

from app.models.user import UserRole


ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[str]] = {
    UserRole.SUPER_ADMIN: frozenset({"*"}),
    UserRole.ADMIN: frozenset({
        "user:read", "user:create", "user:update",
        "exam:create", "exam:read", "exam:update", "exam:delete",
        "question:create", "question:read", "question:update", "question:delete",
        "category:create", "category:read", "category:update", "category:delete",
        "booking:create", "booking:read", "booking:update", "booking:delete",
        "calendar:create", "calendar:read", "calendar:update", "calendar:delete",
        "analytics:read",
        "audit:read",
        "payment:read", "payment:update",
    }),
    UserRole.MODERATOR: frozenset({
        "user:read",
        "exam:read", "exam:update",
        "question:read", "question:create", "question:update",
        "category:read",
        "booking:read", "booking:update",
        "calendar:read", "calendar:update",
        "analytics:read",
    }),
    UserRole.STUDENT: frozenset({
        "profile:read", "profile:update",
        "exam:read",
        "booking:read", "booking:create",
        "attempt:read", "attempt:create", "attempt:update",
        "payment:read", "payment:create",
    }),
}

# Role groups used by route dependencies
ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN)
SUPER_ADMIN_ROLES = (UserRole.SUPER_ADMIN,)
STAFF_ROLES = (UserRole.ADMIN, UserRole.SUPER_ADMIN, UserRole.MODERATOR)
STUDENT_ROLES = (UserRole.STUDENT,)


def get_permissions(role: UserRole) -> List[str]:
    """Sorted permission list for a role"""
    return sorted(ROLE_PERMISSIONS.get(role, frozenset()))


def has_permission(role: UserRole, permission: str) -> bool:
    granted = ROLE_PERMISSIONS.get(role, frozenset())
    return "*" in granted or permission in granted


def is_admin(role: UserRole) -> bool:
    return role in ADMIN_ROLES


def is_staff(role: UserRole) -> bool:
    return role in STAFF_ROLES


def can_manage_role(actor_role: UserRole, target_role: UserRole) -> bool:
    """Admin roles are granted, revoked and edited by super admins only"""
    return target_role not in ADMIN_ROLES or actor_role in SUPER_ADMIN_ROLES
