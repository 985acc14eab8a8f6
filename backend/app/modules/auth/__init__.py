# Authentication module

from app.modules.auth.dependencies import (
    get_current_user,
    get_optional_user,
    require_roles,
    require_permission,
    require_admin,
    require_super_admin,
    require_staff,
    require_student,
)

__all__ = [
    "get_current_user",
    "get_optional_user",
    "require_roles",
    "require_permission",
    "require_admin",
    "require_super_admin",
    "require_staff",
    "require_student",
]
