# Overview: Role policy predicates shared by UI gating (/api/auth/me) and server-side enforcement.

"""
Role Policy

Pure, total predicates over Role. Every route and service that gates an
action calls these; there is no second copy of the rules anywhere else.

Self-edits are NOT special-cased here: an ADMIN passes can_update_role
for any transition, including on their own account. The administration
service blocks self role changes explicitly.
"""

from __future__ import annotations

from .roles import Role, ALL_ROLES

_USER_MANAGERS = frozenset({Role.BOARD, Role.ADMIN})
_BOARD_MANAGED_TARGETS = frozenset({Role.MANAGER, Role.SALESPERSON})


def can_manage_users(role: Role) -> bool:
    return role in _USER_MANAGERS


def can_manage_stores(role: Role) -> bool:
    return can_manage_users(role)


def can_upload_products(role: Role) -> bool:
    return role in _USER_MANAGERS


def can_delete_users(role: Role) -> bool:
    return role == Role.ADMIN


def can_change_password(actor_role: Role, target_role: Role) -> bool:
    if actor_role == Role.ADMIN:
        return True
    if actor_role == Role.BOARD:
        return target_role in _BOARD_MANAGED_TARGETS
    return False


def can_update_role(actor_role: Role, current_target_role: Role, new_target_role: Role) -> bool:
    if actor_role == Role.ADMIN:
        return True
    if actor_role == Role.BOARD:
        # Only promotion of a salesperson to manager
        return current_target_role == Role.SALESPERSON and new_target_role == Role.MANAGER
    return False


def can_assign_role_on_create(actor_role: Role, new_role: Role) -> bool:
    """
    Creation-time role ceiling.

    BOARD is held to the same ceiling as its update permission: the highest
    role it can ever put on an account is MANAGER.
    """
    if actor_role == Role.ADMIN:
        return True
    if actor_role == Role.BOARD:
        return new_role in _BOARD_MANAGED_TARGETS
    return False


def creatable_roles(actor_role: Role) -> list[Role]:
    return [r for r in ALL_ROLES if can_assign_role_on_create(actor_role, r)]


def selectable_roles(actor_role: Role, current_target_role: Role) -> list[Role]:
    """Roles that may be offered when editing a target currently holding current_target_role."""
    return [
        r for r in ALL_ROLES
        if r != current_target_role and can_update_role(actor_role, current_target_role, r)
    ]


def capabilities(role: Role) -> dict:
    """Flat capability map for client-side gating."""
    return {
        "manage_users": can_manage_users(role),
        "manage_stores": can_manage_stores(role),
        "upload_products": can_upload_products(role),
        "delete_users": can_delete_users(role),
        "creatable_roles": [r.value for r in creatable_roles(role)],
    }
