# Overview: Role policy package.
# Re-exports the role enum and policy predicates.

from .roles import (
    Role,
    ROLE_HIERARCHY,
    ALL_ROLES,
    UnknownRoleError,
    parse_role,
    has_higher_or_equal_role,
)
from .policy import (
    can_manage_users,
    can_manage_stores,
    can_upload_products,
    can_delete_users,
    can_change_password,
    can_update_role,
    can_assign_role_on_create,
    creatable_roles,
    selectable_roles,
    capabilities,
)

__all__ = [
    "Role",
    "ROLE_HIERARCHY",
    "ALL_ROLES",
    "UnknownRoleError",
    "parse_role",
    "has_higher_or_equal_role",
    "can_manage_users",
    "can_manage_stores",
    "can_upload_products",
    "can_delete_users",
    "can_change_password",
    "can_update_role",
    "can_assign_role_on_create",
    "creatable_roles",
    "selectable_roles",
    "capabilities",
]
